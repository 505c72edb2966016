"""Trade state machine.

Pure functions over ``Trade`` values: the engine validates an action against
the transition graph and computes the resulting trade. It never performs I/O;
the trade service runs ``validate`` before any request to the marketplace and
uses ``apply`` for the optimistic local copy.

Open offers (pending, countered) can be accepted, declined, cancelled or
(pending only) countered. Accepted and active trades collect meetup
confirmations; the trade is completed once both parties have marked it
completed. Declined, cancelled, expired and completed are terminal.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, List, Optional

from barter_offers.exceptions.trade_exceptions import InvalidTransitionError, TradeError
from barter_offers.models.trade import (
    ONGOING_STATUSES,
    OPEN_STATUSES,
    Party,
    Trade,
    TradeItem,
    TradeStatus,
)
from barter_offers.schemas.trade import TradeAction, TradeActionRequest
from barter_offers.validators.base import TransitionValidator
from barter_offers.validators.expiry_validator import ExpiryDueValidator, ExpiryValidator
from barter_offers.validators.meetup_validator import (
    CompletionGateValidator,
    MeetupOptionValidator,
)
from barter_offers.validators.role_validator import RoleValidator
from barter_offers.validators.status_validator import StatusValidator


@dataclass(frozen=True)
class TransitionRule:
    allowed: FrozenSet[TradeStatus]
    party: Optional[Party]  # None: either party
    result: Optional[TradeStatus]  # None: status unchanged
    system_only: bool = False


TRANSITIONS: Dict[TradeAction, TransitionRule] = {
    TradeAction.ACCEPT: TransitionRule(OPEN_STATUSES, Party.SELLER, TradeStatus.ACCEPTED),
    TradeAction.DECLINE: TransitionRule(OPEN_STATUSES, Party.SELLER, TradeStatus.DECLINED),
    TradeAction.CANCEL: TransitionRule(OPEN_STATUSES, Party.BUYER, TradeStatus.CANCELLED),
    TradeAction.COUNTER: TransitionRule(
        frozenset({TradeStatus.PENDING}), Party.SELLER, TradeStatus.COUNTERED
    ),
    TradeAction.CONFIRM_MEETUP: TransitionRule(ONGOING_STATUSES, None, None),
    # Status only moves once the second party completes, see ``apply``
    TradeAction.COMPLETE: TransitionRule(ONGOING_STATUSES, None, None),
    TradeAction.EXPIRE: TransitionRule(
        OPEN_STATUSES, None, TradeStatus.EXPIRED, system_only=True
    ),
}

# Forward actions refused on offers that look expired locally
_EXPIRY_CHECKED = frozenset({TradeAction.ACCEPT, TradeAction.COUNTER})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransitionEngine:
    def __init__(
        self,
        expiry_threshold: timedelta,
        clock: Callable[[], datetime] = _utcnow,
        bilateral_completion: bool = True,
    ) -> None:
        self._expiry_threshold = expiry_threshold
        self._clock = clock
        # False: the first party's complete already finishes the trade
        self._bilateral_completion = bilateral_completion

    def validators_for(
        self, action: TradeAction, now: datetime
    ) -> List[TransitionValidator]:
        rule = TRANSITIONS[action]
        validators: List[TransitionValidator] = [StatusValidator(action.value, rule.allowed)]
        if rule.system_only:
            validators.append(ExpiryDueValidator(self._expiry_threshold, now))
            return validators
        validators.append(RoleValidator(action.value, rule.party))
        if action in _EXPIRY_CHECKED:
            validators.append(ExpiryValidator(self._expiry_threshold, now))
        if action == TradeAction.CONFIRM_MEETUP:
            validators.append(MeetupOptionValidator())
        if action == TradeAction.COMPLETE:
            validators.append(CompletionGateValidator())
        return validators

    def validate(
        self,
        trade: Trade,
        action: TradeAction,
        actor_id: Optional[int],
        request: Optional[TradeActionRequest] = None,
        now: Optional[datetime] = None,
    ) -> TransitionRule:
        """Run every guard for ``action``; raises without touching ``trade``."""
        rule = TRANSITIONS[action]
        if rule.system_only and actor_id is not None:
            raise InvalidTransitionError(
                f"'{action.value}' is decided by the marketplace, not by a party."
            )
        now = now or self._clock()
        for validator in self.validators_for(action, now):
            validator.validate(trade, actor_id)
        if action == TradeAction.COUNTER:
            if request is None or (
                not request.counter_offered_product_ids
                and request.counter_offered_cash_amount is None
            ):
                raise InvalidTransitionError(
                    f"Counter-offer on trade {trade.id} needs a bundle of products or a cash amount."
                )
        return rule

    def apply(
        self,
        trade: Trade,
        action: TradeAction,
        actor_id: Optional[int],
        request: Optional[TradeActionRequest] = None,
        now: Optional[datetime] = None,
    ) -> Trade:
        """Validate and return the trade as it looks after ``action``."""
        now = now or self._clock()
        rule = self.validate(trade, action, actor_id, request, now)
        update: dict = {"updated_at": now}
        if rule.result is not None:
            update["status"] = rule.result

        if action == TradeAction.DECLINE:
            update["decline_feedback"] = request.message if request else None
        elif action == TradeAction.COUNTER:
            update["items"] = [
                TradeItem(product_id=pid, offered_by=Party.SELLER, created_at=now)
                for pid in request.counter_offered_product_ids
            ]
            update["offered_cash_amount"] = request.counter_offered_cash_amount
            if request.message is not None:
                update["message"] = request.message
        elif action == TradeAction.CONFIRM_MEETUP:
            if trade.party_of(actor_id) == Party.BUYER:
                if trade.buyer_meetup_confirmed:
                    return trade
                update["buyer_meetup_confirmed"] = True
            else:
                if trade.seller_meetup_confirmed:
                    return trade
                update["seller_meetup_confirmed"] = True
            if request is not None and request.meetup_location:
                update["meetup_location"] = request.meetup_location
        elif action == TradeAction.COMPLETE:
            party = trade.party_of(actor_id)
            if trade.completed_by(party):
                return trade
            update["buyer_completed" if party == Party.BUYER else "seller_completed"] = True
            other = Party.SELLER if party == Party.BUYER else Party.BUYER
            if trade.completed_by(other) or not self._bilateral_completion:
                update["status"] = TradeStatus.COMPLETED
                update["completed_at"] = now

        return trade.model_copy(update=update)

    def available_actions(
        self, trade: Trade, actor_id: int, now: Optional[datetime] = None
    ) -> List[TradeAction]:
        """Actions ``actor_id`` could take right now, for rendering buttons."""
        now = now or self._clock()
        counter_stub = TradeActionRequest(action=TradeAction.COUNTER, counter_offered_product_ids=[0])
        actions = []
        for action, rule in TRANSITIONS.items():
            if rule.system_only:
                continue
            try:
                self.validate(trade, action, actor_id, counter_stub, now)
            except TradeError:
                continue
            actions.append(action)
        return actions
