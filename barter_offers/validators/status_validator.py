from typing import FrozenSet, Optional

from barter_offers.exceptions.trade_exceptions import (
    InvalidTransitionError,
    TerminalStateError,
)
from barter_offers.models.trade import Trade, TradeStatus
from barter_offers.validators.base import TransitionValidator


class StatusValidator(TransitionValidator):
    def __init__(self, action: str, allowed: FrozenSet[TradeStatus]) -> None:
        self.action = action
        self.allowed = allowed

    def validate(self, trade: Trade, actor_id: Optional[int]) -> None:
        if trade.is_terminal:
            raise TerminalStateError(
                f"Trade {trade.id} is {trade.status.value}; '{self.action}' is no longer "
                f"possible. Refresh the trade before retrying."
            )
        if trade.status not in self.allowed:
            allowed = ", ".join(sorted(s.value for s in self.allowed))
            raise InvalidTransitionError(
                f"Trade {trade.id} rejected '{self.action}': status is "
                f"{trade.status.value}, expected one of {allowed}."
            )
