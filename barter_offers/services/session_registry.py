import asyncio
import time
from datetime import timedelta
from typing import Callable, Dict, Optional

import httpx

from barter_offers.config import settings
from barter_offers.logging_config import get_logger
from barter_offers.repositories.product_repository import ProductRepository
from barter_offers.repositories.trade_repository import TradeRepository
from barter_offers.services.categorizer import OfferViewBuilder
from barter_offers.services.item_resolver import ItemBundleResolver
from barter_offers.services.sync import TradeSyncSession
from barter_offers.services.trade_service import TradeService
from barter_offers.services.transition_engine import TransitionEngine

logger = get_logger(__name__)


class SessionRegistry:
    """One sync session (trade list, title cache, cursors) per signed-in user.

    Sessions share the HTTP client but nothing else, so users never see each
    other's caches. A session nobody has used for ``idle_timeout_seconds`` is
    closed, which also stops its polling.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        page_size: int = settings.offers_page_size,
        poll_interval_seconds: float = settings.refresh_poll_interval_seconds,
        expiry_hours: int = settings.trade_expiry_hours,
        bilateral_completion: bool = settings.bilateral_completion,
        idle_timeout_seconds: float = settings.session_idle_timeout_seconds,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._poll_interval_seconds = poll_interval_seconds
        self._idle_timeout_seconds = idle_timeout_seconds
        self._clock = clock
        self._engine = TransitionEngine(
            expiry_threshold=timedelta(hours=expiry_hours),
            bilateral_completion=bilateral_completion,
        )
        self._sessions: Dict[int, TradeSyncSession] = {}
        self._tokens: Dict[int, Optional[str]] = {}
        self._last_seen: Dict[int, float] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    async def session(
        self, user_id: int, auth_token: Optional[str] = None
    ) -> TradeSyncSession:
        await self.evict_idle()
        self._last_seen[user_id] = self._clock()

        existing = self._sessions.get(user_id)
        if existing is not None and self._tokens.get(user_id) == auth_token:
            return existing
        if existing is not None:
            # New token: the old session's repositories carry the old credentials
            await existing.close()
            logger.info("session_replaced", user_id=user_id)

        resolver = ItemBundleResolver(
            ProductRepository(self._client, auth_token).lookup_product
        )
        session = TradeSyncSession(
            user_id=user_id,
            repo=TradeRepository(self._client, auth_token),
            resolver=resolver,
            views=OfferViewBuilder(user_id, self._page_size),
        )
        session.start_polling(self._poll_interval_seconds)
        self._sessions[user_id] = session
        self._tokens[user_id] = auth_token
        logger.info("session_created", user_id=user_id)
        return session

    async def service(self, user_id: int, auth_token: Optional[str] = None) -> TradeService:
        session = await self.session(user_id, auth_token)
        return TradeService(
            repo=TradeRepository(self._client, auth_token),
            engine=self._engine,
            session=session,
        )

    async def evict_idle(self) -> int:
        """Close every session unused for longer than the idle timeout."""
        if self._idle_timeout_seconds <= 0:
            return 0
        cutoff = self._clock() - self._idle_timeout_seconds
        idle = [uid for uid, seen in self._last_seen.items() if seen < cutoff]
        # unregister first so a request arriving during close() gets a new session
        evicted = []
        for user_id in idle:
            self._tokens.pop(user_id, None)
            self._last_seen.pop(user_id, None)
            session = self._sessions.pop(user_id, None)
            if session is not None:
                evicted.append((user_id, session))
        for user_id, session in evicted:
            await session.close()
            logger.info("session_evicted", user_id=user_id)
        return len(idle)

    def start_sweeping(self, interval_seconds: float) -> None:
        if interval_seconds <= 0 or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep(interval_seconds)
        )

    async def _sweep(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.evict_idle()
            except Exception as exc:
                logger.error("session_sweep_failed", error=str(exc))

    async def close(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()
        self._tokens.clear()
        self._last_seen.clear()
        logger.info("sessions_closed")
