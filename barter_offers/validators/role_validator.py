from typing import Optional

from barter_offers.exceptions.trade_exceptions import ActionNotPermittedError
from barter_offers.models.trade import Party, Trade
from barter_offers.validators.base import TransitionValidator


class RoleValidator(TransitionValidator):
    """Checks the actor is a party to the trade, and the required one when ``party`` is set."""

    def __init__(self, action: str, party: Optional[Party]) -> None:
        self.action = action
        self.party = party

    def validate(self, trade: Trade, actor_id: Optional[int]) -> Party:
        actual = trade.party_of(actor_id) if actor_id is not None else None
        if actual is None:
            raise ActionNotPermittedError(
                f"User {actor_id} is not a party to trade {trade.id}."
            )
        if self.party is not None and actual != self.party:
            raise ActionNotPermittedError(
                f"Only the {self.party.value} can {self.action} trade {trade.id}."
            )
        return actual
