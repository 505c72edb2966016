"""Product title/thumbnail resolution for trade cards.

Trades usually carry ``product_title``/``product_image_url`` inline; when they
do not, titles are looked up in the product catalog once per product id and
cached for the lifetime of the session.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from barter_offers.config import settings
from barter_offers.exceptions.trade_exceptions import ResolutionError, TradeError
from barter_offers.logging_config import get_logger
from barter_offers.models.trade import Trade
from barter_offers.schemas.product import ProductSummary

logger = get_logger(__name__)

ProductLookup = Callable[[int], Awaitable[ProductSummary]]


class ItemBundleResolver:
    def __init__(
        self,
        lookup: ProductLookup,
        placeholder: str = settings.placeholder_title,
        on_resolved: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._lookup = lookup
        self.placeholder = placeholder
        self.on_resolved = on_resolved
        self._cache: Dict[int, ProductSummary] = {}
        self._failed: Set[int] = set()
        self._in_flight: Dict[int, "asyncio.Task[Optional[ProductSummary]]"] = {}

    def cached(self, product_id: int) -> Optional[ProductSummary]:
        return self._cache.get(product_id)

    def remember(self, summary: ProductSummary) -> None:
        # Values are immutable facts per product id, last write wins
        self._cache[summary.product_id] = summary
        self._failed.discard(summary.product_id)

    def invalidate(self, product_id: int) -> None:
        self._cache.pop(product_id, None)
        self._failed.discard(product_id)

    def resolve(self, product_id: int, fallback_title: Optional[str] = None) -> str:
        """Title for ``product_id`` without waiting.

        Returns the placeholder while a lookup is outstanding; the
        ``on_resolved`` listener fires once the real title arrives.
        """
        if fallback_title:
            return fallback_title
        summary = self._cache.get(product_id)
        if summary is not None:
            return summary.title
        self._schedule(product_id)
        return self.placeholder

    async def fetch(self, product_id: int) -> ProductSummary:
        """Wait for the (shared) lookup of ``product_id``; never raises."""
        summary = self._cache.get(product_id)
        if summary is not None:
            return summary
        task = self._schedule(product_id)
        if task is not None:
            summary = await task
        return summary or ProductSummary(product_id=product_id, title=self.placeholder)

    def prefetch(self, trades: Iterable[Trade]) -> List[int]:
        """Schedule lookups for every product the trades do not describe inline."""
        scheduled: List[int] = []
        for trade in trades:
            missing = [] if trade.product_title else [trade.target_product_id]
            missing.extend(item.product_id for item in trade.items if not item.product_title)
            for product_id in missing:
                if product_id not in scheduled and self._schedule(product_id) is not None:
                    scheduled.append(product_id)
        return scheduled

    async def wait_idle(self) -> None:
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()))

    def annotate(self, trade: Trade) -> Trade:
        """Copy of ``trade`` with titles and images filled in, matched by product id."""
        # Embedded titles are as good as a lookup result
        if trade.product_title and trade.target_product_id not in self._cache:
            self._cache[trade.target_product_id] = ProductSummary(
                product_id=trade.target_product_id,
                title=trade.product_title,
                image_url=trade.product_image_url,
            )
        for item in trade.items:
            if item.product_title and item.product_id not in self._cache:
                self._cache[item.product_id] = ProductSummary(
                    product_id=item.product_id,
                    title=item.product_title,
                    image_url=item.product_image_url,
                )

        target = self._cache.get(trade.target_product_id)
        items = []
        for item in trade.items:
            summary = self._cache.get(item.product_id)
            if summary is None or (item.product_title and item.product_image_url):
                items.append(item)
                continue
            items.append(
                item.model_copy(
                    update={
                        "product_title": item.product_title or summary.title,
                        "product_image_url": item.product_image_url or summary.image_url,
                    }
                )
            )
        return trade.model_copy(
            update={
                "product_title": trade.product_title
                or (target.title if target else self.placeholder),
                "product_image_url": trade.product_image_url
                or (target.image_url if target else None),
                "items": items,
            }
        )

    def _schedule(self, product_id: int) -> "Optional[asyncio.Task[Optional[ProductSummary]]]":
        if product_id in self._cache or product_id in self._failed:
            return None
        task = self._in_flight.get(product_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run_lookup(product_id))
            self._in_flight[product_id] = task
        return task

    async def _lookup_product(self, product_id: int) -> ProductSummary:
        try:
            return await self._lookup(product_id)
        except TradeError as exc:
            raise ResolutionError(
                product_id, f"Lookup of product {product_id} failed: {exc.message}"
            ) from exc
        except Exception as exc:
            # an unreadable catalog entry must not be looked up again on every refresh
            raise ResolutionError(
                product_id,
                f"Lookup of product {product_id} failed: {exc.__class__.__name__}: {exc}",
            ) from exc

    async def _run_lookup(self, product_id: int) -> Optional[ProductSummary]:
        try:
            summary = await self._lookup_product(product_id)
        except ResolutionError as exc:
            self._failed.add(product_id)
            logger.warning("product_resolution_failed", product_id=product_id, error=exc.message)
            return None
        finally:
            self._in_flight.pop(product_id, None)

        self.remember(summary)
        logger.debug("product_resolved", product_id=product_id)
        if self.on_resolved is not None:
            self.on_resolved(product_id)
        return summary
