from typing import List, Optional

from barter_offers.exceptions.trade_exceptions import (
    InvalidTransitionError,
    StaleStateError,
    TradeError,
)
from barter_offers.logging_config import get_logger
from barter_offers.models.trade import Trade
from barter_offers.repositories.trade_repository import TradeRepository
from barter_offers.schemas.trade import (
    OfferPage,
    PushEvent,
    RefreshResult,
    TradeAction,
    TradeActionRequest,
    TradeCounts,
    TradeResponse,
    to_response,
)
from barter_offers.services.categorizer import Bucket, BucketState, history_source
from barter_offers.services.sync import TradeSyncSession
from barter_offers.services.transition_engine import TransitionEngine

logger = get_logger(__name__)


class TradeService:
    def __init__(
        self,
        repo: TradeRepository,
        engine: TransitionEngine,
        session: TradeSyncSession,
    ) -> None:
        self._repo = repo
        self._engine = engine
        self._session = session

    @property
    def user_id(self) -> int:
        return self._session.user_id

    async def perform_action(
        self, trade_id: int, request: TradeActionRequest
    ) -> TradeResponse:
        """Validate locally, write to the marketplace, then refresh.

        Guard failures raise before any request is sent. While the write is
        in flight the trade shows its provisional state; a failed write rolls
        that back completely.
        """
        logger.info(
            "trade_action_requested",
            trade_id=trade_id,
            action=request.action.value,
            user_id=self.user_id,
        )
        if request.action == TradeAction.EXPIRE:
            raise InvalidTransitionError("Expiry is decided by the marketplace service.")

        await self._session.ensure_loaded()
        trade = self._session.trade(trade_id)
        if trade is None:
            raise StaleStateError(
                f"Trade {trade_id} is not in the current trade list. Refresh and retry."
            )

        try:
            provisional = self._engine.apply(trade, request.action, self.user_id, request)
        except TradeError as exc:
            logger.warning(
                "trade_action_rejected_locally",
                trade_id=trade_id,
                action=request.action.value,
                status=trade.status.value,
                reason=exc.message,
            )
            raise

        token = self._session.begin_action(trade_id, request.action, provisional)
        settled = False
        try:
            if request.action == TradeAction.CONFIRM_MEETUP:
                confirmed = await self._repo.confirm_meetup(trade_id, request.meetup_location)
            else:
                confirmed = await self._repo.apply_trade_action(trade_id, request)
            self._session.acknowledge_action(token, confirmed)
            settled = True
        except StaleStateError as exc:
            logger.warning(
                "trade_action_stale",
                trade_id=trade_id,
                action=request.action.value,
                reason=exc.message,
            )
            self._session.rollback_action(token)
            settled = True
            await self._session.refresh(reason="stale_state", supersede=True)
            raise
        except TradeError as exc:
            logger.warning(
                "trade_action_failed",
                trade_id=trade_id,
                action=request.action.value,
                reason=exc.message,
            )
            raise
        finally:
            # whatever ended the write, no unconfirmed overlay may outlive it
            if not settled:
                self._session.rollback_action(token)

        logger.info(
            "trade_action_applied",
            trade_id=trade_id,
            action=request.action.value,
            status=confirmed.status.value,
        )
        await self._session.refresh(reason=request.action.value, supersede=True)
        return self._response(self._session.trade(trade_id) or confirmed)

    async def get_offer_page(
        self,
        bucket: Bucket,
        search_term=None,
        status_filter=None,
        sort_order=None,
        page: Optional[int] = None,
    ) -> OfferPage:
        await self._session.ensure_loaded()
        views = self._session.views
        changes = {}
        if search_term is not None:
            changes["search_term"] = search_term or None
        if status_filter is not None:
            changes["status_filter"] = status_filter
        if sort_order is not None:
            changes["sort_order"] = sort_order
        if page is not None:
            changes["page"] = page
        views.update_state(bucket, **changes)

        result = views.page(bucket)
        return OfferPage(
            bucket=bucket.value,
            items=[
                self._response(
                    t,
                    source=history_source(t, self.user_id) if bucket == Bucket.HISTORY else None,
                )
                for t in result.items
            ],
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
            stale=views.stale,
            error=views.stale_error,
        )

    def bucket_state(self, bucket: Bucket) -> BucketState:
        return self._session.views.state(bucket)

    async def get_counts(self) -> TradeCounts:
        await self._session.ensure_loaded()
        return self._session.counts

    async def get_all_trades(self) -> List[TradeResponse]:
        await self._session.ensure_loaded()
        trades = sorted(self._session.views.trades, key=lambda t: t.id)
        return [self._response(t) for t in trades]

    async def refresh(self) -> RefreshResult:
        """Manual refresh, e.g. the retry button on the stale banner."""
        applied = await self._session.refresh(reason="manual")
        return self._refresh_result(applied)

    async def handle_push_event(self, event: PushEvent) -> RefreshResult:
        applied = await self._session.handle_push_event(event.type, event.data)
        return self._refresh_result(applied)

    def _refresh_result(self, applied: bool) -> RefreshResult:
        views = self._session.views
        return RefreshResult(
            applied=applied,
            sequence=self._session.applied_sequence,
            stale=views.stale,
            error=views.stale_error,
        )

    def _response(self, trade: Trade, source: Optional[str] = None) -> TradeResponse:
        pending = self._session.pending_action_for(trade.id)
        return to_response(
            self._session.resolver.annotate(trade),
            source=source,
            pending_action=pending.value if pending is not None else None,
            available_actions=[
                a.value for a in self._engine.available_actions(trade, self.user_id)
            ],
        )
