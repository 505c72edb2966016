from datetime import datetime, timedelta, timezone
from typing import Optional

from barter_offers.exceptions.trade_exceptions import (
    InvalidTransitionError,
    StaleStateError,
)
from barter_offers.models.trade import OPEN_STATUSES, Trade
from barter_offers.validators.base import TransitionValidator


def trade_age(trade: Trade, now: datetime) -> timedelta:
    """Time since the last change to an open offer (a counter restarts the clock)."""
    last = trade.updated_at or trade.created_at
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return now - last


class ExpiryValidator(TransitionValidator):
    """Rejects forward actions on open offers the server is about to expire.

    The server owns expiry; this only keeps an obviously stale offer from
    being accepted locally.
    """

    def __init__(self, max_age: timedelta, now: datetime) -> None:
        self.max_age = max_age
        self.now = now

    def validate(self, trade: Trade, actor_id: Optional[int]) -> None:
        if trade.status in OPEN_STATUSES and trade_age(trade, self.now) > self.max_age:
            raise StaleStateError(
                f"Trade {trade.id} has been {trade.status.value} for longer than "
                f"{self.max_age}; it has likely expired. Refresh before retrying."
            )


class ExpiryDueValidator(TransitionValidator):
    def __init__(self, max_age: timedelta, now: datetime) -> None:
        self.max_age = max_age
        self.now = now

    def validate(self, trade: Trade, actor_id: Optional[int]) -> None:
        if trade_age(trade, self.now) <= self.max_age:
            raise InvalidTransitionError(
                f"Trade {trade.id} is not old enough to expire."
            )
