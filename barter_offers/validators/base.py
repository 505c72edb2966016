from abc import ABC, abstractmethod
from typing import Optional

from barter_offers.models.trade import Trade


class TransitionValidator(ABC):
    @abstractmethod
    def validate(self, trade: Trade, actor_id: Optional[int]) -> None:
        ...
