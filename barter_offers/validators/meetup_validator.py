from typing import Optional

from barter_offers.exceptions.trade_exceptions import (
    InvalidTransitionError,
    MeetupConfirmationRequiredError,
)
from barter_offers.models.trade import Trade, TradeOption
from barter_offers.validators.base import TransitionValidator


class MeetupOptionValidator(TransitionValidator):
    def validate(self, trade: Trade, actor_id: Optional[int]) -> None:
        if trade.trade_option != TradeOption.MEETUP:
            raise InvalidTransitionError(
                f"Trade {trade.id} is a {trade.trade_option.value} trade; "
                f"there is no meetup to confirm."
            )


class CompletionGateValidator(TransitionValidator):
    """Meetup trades complete only after both parties confirmed the meetup."""

    def validate(self, trade: Trade, actor_id: Optional[int]) -> None:
        if trade.trade_option != TradeOption.MEETUP or trade.meetup_confirmed:
            return
        missing = []
        if not trade.buyer_meetup_confirmed:
            missing.append("buyer")
        if not trade.seller_meetup_confirmed:
            missing.append("seller")
        raise MeetupConfirmationRequiredError(
            f"Trade {trade.id} cannot be completed yet: meetup not confirmed by "
            f"{' and '.join(missing)}. Confirm the meetup first."
        )
