"""Refresh policy for one user's trade list.

Every fetch gets a sequence number; a result is applied only if its number
is still the latest issued, so a slow response can never overwrite a newer
one. Ordinary refresh requests (polling, push events, manual retry) arriving
while a fetch is in flight are coalesced into a single follow-up fetch.
Refreshes after the user's own actions supersede whatever is in flight.
"""

import asyncio
import itertools
from typing import Dict, List, Optional

from barter_offers.exceptions.trade_exceptions import TradeError
from barter_offers.logging_config import get_logger
from barter_offers.models.trade import Trade
from barter_offers.repositories.trade_repository import TradeRepository
from barter_offers.schemas.trade import TradeAction, TradeCounts, TradeDirection
from barter_offers.services.categorizer import OfferViewBuilder
from barter_offers.services.counters import compute_counts
from barter_offers.services.item_resolver import ItemBundleResolver
from barter_offers.services.optimistic import (
    PendingAction,
    acknowledge,
    reduce_trades,
    rollback,
    settle,
)

logger = get_logger(__name__)

PUSH_EVENT_TYPES = frozenset({"trade_created", "trade_updated"})


class TradeSyncSession:
    def __init__(
        self,
        user_id: int,
        repo: TradeRepository,
        resolver: ItemBundleResolver,
        views: OfferViewBuilder,
    ) -> None:
        self.user_id = user_id
        self._repo = repo
        self.resolver = resolver
        self.views = views
        resolver.on_resolved = self._on_title_resolved

        self._server: Dict[int, Trade] = {}
        self._pending: List[PendingAction] = []
        self._tokens = itertools.count(1)
        self.counts = TradeCounts()

        self._sequence = 0
        self._applied_sequence = 0
        self._in_flight = 0
        self._refresh_requested = False
        self._poll_task: Optional[asyncio.Task] = None
        self._mount_task: Optional[asyncio.Task] = None
        self.last_error: Optional[TradeError] = None

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    @property
    def loaded(self) -> bool:
        return self._applied_sequence > 0

    def trade(self, trade_id: int) -> Optional[Trade]:
        return reduce_trades(self._server, self._pending).get(trade_id)

    def trades(self) -> List[Trade]:
        """Raw list as the user should see it, including declined and cancelled."""
        return list(reduce_trades(self._server, self._pending).values())

    def pending_action_for(self, trade_id: int) -> Optional[TradeAction]:
        for pending in reversed(self._pending):
            if pending.trade_id == trade_id:
                return pending.action
        return None

    async def ensure_loaded(self) -> None:
        """Initial fetch on first use.

        Every caller arriving before the first result waits for the same
        mount fetch, so nobody renders an empty list that is merely unloaded.
        """
        if self.loaded:
            return
        if self._mount_task is None or self._mount_task.done():
            # supersede: a coalesced request would return before any data exists
            self._mount_task = asyncio.get_running_loop().create_task(
                self.refresh(reason="mount", supersede=True)
            )
        await asyncio.shield(self._mount_task)

    async def refresh(self, reason: str = "manual", supersede: bool = False) -> bool:
        """Fetch the trade list; returns True if this call applied a result.

        Without ``supersede`` a request made while another fetch is running
        only schedules one follow-up fetch after it.
        """
        if self._in_flight and not supersede:
            self._refresh_requested = True
            logger.debug("refresh_coalesced", user_id=self.user_id, reason=reason)
            return False

        applied = await self._fetch_and_apply(reason)
        while self._refresh_requested and not self._in_flight:
            self._refresh_requested = False
            applied = await self._fetch_and_apply("coalesced") or applied
        return applied

    async def _fetch_and_apply(self, reason: str) -> bool:
        self._sequence += 1
        sequence = self._sequence
        self._in_flight += 1
        logger.info("refresh_started", user_id=self.user_id, sequence=sequence, reason=reason)
        try:
            trades = await self._fetch_all()
        except TradeError as exc:
            if sequence == self._sequence:
                self.last_error = exc
                self.views.mark_stale(exc.message)
            logger.warning(
                "refresh_failed",
                user_id=self.user_id,
                sequence=sequence,
                error=exc.message,
            )
            return False
        finally:
            self._in_flight -= 1

        if sequence != self._sequence:
            logger.info(
                "refresh_result_discarded",
                user_id=self.user_id,
                sequence=sequence,
                latest=self._sequence,
            )
            return False

        self._server = {t.id: t for t in trades}
        self._applied_sequence = sequence
        self._pending = settle(self._pending, sequence)
        self.last_error = None
        self.resolver.prefetch(trades)
        self._rebuild()
        logger.info(
            "refresh_applied",
            user_id=self.user_id,
            sequence=sequence,
            trades=len(trades),
        )
        return True

    async def _fetch_all(self) -> List[Trade]:
        incoming, outgoing = await asyncio.gather(
            self._repo.list_trades(TradeDirection.INCOMING),
            self._repo.list_trades(TradeDirection.OUTGOING),
        )
        merged: Dict[int, Trade] = {}
        for trade in list(incoming) + list(outgoing):
            merged[trade.id] = trade
        return list(merged.values())

    def _rebuild(self) -> None:
        trades = [self.resolver.annotate(t) for t in self.trades()]
        self.views.rebuild(trades)
        if self.last_error is not None:
            self.views.mark_stale(self.last_error.message)
        self.counts = compute_counts(trades, self.user_id)

    def _on_title_resolved(self, product_id: int) -> None:
        self._rebuild()

    # Optimistic overlay, driven by the trade service

    def begin_action(self, trade_id: int, action: TradeAction, provisional: Trade) -> int:
        token = next(self._tokens)
        self._pending.append(PendingAction(token, trade_id, action, provisional))
        self._rebuild()
        return token

    def acknowledge_action(self, token: int, confirmed: Trade) -> None:
        self._pending = acknowledge(self._pending, token, confirmed, self._sequence)
        self._rebuild()

    def rollback_action(self, token: int) -> None:
        self._pending = rollback(self._pending, token)
        self._rebuild()

    # Triggers

    async def handle_push_event(self, event_type: str, data: Optional[dict] = None) -> bool:
        if event_type not in PUSH_EVENT_TYPES:
            logger.debug("push_event_ignored", user_id=self.user_id, event_type=event_type)
            return False
        logger.info(
            "push_event_received",
            user_id=self.user_id,
            event_type=event_type,
            trade_id=(data or {}).get("trade_id"),
        )
        return await self.refresh(reason=event_type)

    def start_polling(self, interval_seconds: float) -> None:
        if interval_seconds <= 0 or self._poll_task is not None:
            return
        self._poll_task = asyncio.get_running_loop().create_task(
            self._poll(interval_seconds)
        )

    async def _poll(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh(reason="poll")
            except Exception as exc:
                logger.error("poll_refresh_failed", user_id=self.user_id, error=str(exc))

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
