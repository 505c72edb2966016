"""Partitions a user's trades into the Sent/Received/Ongoing/History views.

Every bucket goes through the same ``categorize`` call (predicate, search,
status filter, sort) so the four views cannot drift apart.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional

from barter_offers.models.trade import ONGOING_STATUSES, Party, Trade, TradeStatus


class Bucket(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    ONGOING = "ongoing"
    HISTORY = "history"


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"


# Declined and cancelled trades stay in the raw list but have no default view
HIDDEN_STATUSES = frozenset(
    {TradeStatus.COMPLETED, TradeStatus.DECLINED, TradeStatus.CANCELLED}
)

# Countered offers need attention first, then fresh ones
_STATUS_RANK = {TradeStatus.COUNTERED: 0, TradeStatus.PENDING: 1}

TradePredicate = Callable[[Trade], bool]


def _is_offer(trade: Trade) -> bool:
    return trade.status not in HIDDEN_STATUSES and trade.status not in ONGOING_STATUSES


def is_sent(trade: Trade, viewer_id: int) -> bool:
    return trade.buyer_id == viewer_id and _is_offer(trade)


def is_received(trade: Trade, viewer_id: int) -> bool:
    return trade.seller_id == viewer_id and _is_offer(trade)


def is_ongoing(trade: Trade, viewer_id: int) -> bool:
    return trade.status in ONGOING_STATUSES


def is_history(trade: Trade, viewer_id: int) -> bool:
    return trade.status == TradeStatus.COMPLETED


BUCKET_PREDICATES: Dict[Bucket, Callable[[Trade, int], bool]] = {
    Bucket.SENT: is_sent,
    Bucket.RECEIVED: is_received,
    Bucket.ONGOING: is_ongoing,
    Bucket.HISTORY: is_history,
}


def bucket_predicate(bucket: Bucket, viewer_id: int) -> TradePredicate:
    return partial(BUCKET_PREDICATES[bucket], viewer_id=viewer_id)


def history_source(trade: Trade, viewer_id: int) -> Optional[str]:
    party = trade.party_of(viewer_id)
    if party == Party.BUYER:
        return Bucket.SENT.value
    if party == Party.SELLER:
        return Bucket.RECEIVED.value
    return None


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def created_key(trade: Trade) -> datetime:
    return _aware(trade.created_at)


def history_key(trade: Trade) -> datetime:
    return _aware(trade.completed_at or trade.updated_at or trade.created_at)


def matches_search(trade: Trade, search_term: str, viewer_id: Optional[int] = None) -> bool:
    needle = search_term.strip().lower()
    if not needle:
        return True
    haystack = [trade.product_title]
    haystack.extend(item.product_title for item in trade.items)
    if viewer_id is not None and trade.party_of(viewer_id) is not None:
        haystack.append(trade.counterparty_name(viewer_id))
    else:
        haystack.extend([trade.buyer_name, trade.seller_name])
    return any(needle in text.lower() for text in haystack if text)


def categorize(
    trades: Iterable[Trade],
    predicate: TradePredicate,
    search_term: Optional[str] = None,
    status_filter: Optional[TradeStatus] = None,
    sort_order: SortOrder = SortOrder.NEWEST,
    *,
    viewer_id: Optional[int] = None,
    sort_key: Callable[[Trade], datetime] = created_key,
    rank_by_status: bool = False,
) -> List[Trade]:
    """Select, filter and sort one bucket's trades.

    Search and status filter are applied before sorting. With
    ``rank_by_status`` countered offers come before pending ones, which come
    before the rest; the date order applies within each rank.
    """
    selected = [t for t in trades if predicate(t)]
    if status_filter is not None:
        selected = [t for t in selected if t.status == status_filter]
    if search_term:
        selected = [t for t in selected if matches_search(t, search_term, viewer_id)]

    # Two stable passes: date first, then status rank
    selected.sort(key=sort_key, reverse=sort_order == SortOrder.NEWEST)
    if rank_by_status:
        selected.sort(key=lambda t: _STATUS_RANK.get(t.status, len(_STATUS_RANK)))
    return selected


def partition(trades: Iterable[Trade], viewer_id: int) -> Dict[Bucket, List[Trade]]:
    """Unfiltered bucket membership, in input order."""
    trades = list(trades)
    return {
        bucket: [t for t in trades if BUCKET_PREDICATES[bucket](t, viewer_id)]
        for bucket in Bucket
    }


@dataclass(frozen=True)
class PageSlice:
    items: List[Trade]
    page: int
    page_size: int
    total_items: int
    total_pages: int


def paginate(items: List[Trade], page: int, page_size: int) -> PageSlice:
    """Slice out one page; pages outside ``[1, total_pages]`` are clamped."""
    total_pages = math.ceil(len(items) / page_size)
    page = min(max(page, 1), max(total_pages, 1))
    start = (page - 1) * page_size
    return PageSlice(
        items=items[start : start + page_size],
        page=page,
        page_size=page_size,
        total_items=len(items),
        total_pages=total_pages,
    )


@dataclass(frozen=True)
class BucketState:
    search_term: Optional[str] = None
    status_filter: Optional[TradeStatus] = None
    sort_order: SortOrder = SortOrder.NEWEST
    page: int = 1


_UNSET = object()


class OfferViewBuilder:
    """Per-user view state: the last good trade list plus one cursor per bucket.

    When a refresh fails the builder keeps serving the previous list and
    reports it as stale instead of showing empty buckets.
    """

    def __init__(self, viewer_id: int, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.viewer_id = viewer_id
        self.page_size = page_size
        self._trades: List[Trade] = []
        self._states: Dict[Bucket, BucketState] = {b: BucketState() for b in Bucket}
        self.stale_error: Optional[str] = None

    @property
    def trades(self) -> List[Trade]:
        return list(self._trades)

    @property
    def stale(self) -> bool:
        return self.stale_error is not None

    def rebuild(self, trades: Iterable[Trade]) -> None:
        self._trades = list(trades)
        self.stale_error = None

    def mark_stale(self, message: str) -> None:
        self.stale_error = message

    def state(self, bucket: Bucket) -> BucketState:
        return self._states[bucket]

    def update_state(
        self,
        bucket: Bucket,
        search_term=_UNSET,
        status_filter=_UNSET,
        sort_order=_UNSET,
        page=_UNSET,
    ) -> BucketState:
        """Change one bucket's view; a new search, filter or order restarts at page 1."""
        current = self._states[bucket]
        changes = {}
        if search_term is not _UNSET and search_term != current.search_term:
            changes["search_term"] = search_term
        if status_filter is not _UNSET and status_filter != current.status_filter:
            changes["status_filter"] = status_filter
        if sort_order is not _UNSET and sort_order != current.sort_order:
            changes["sort_order"] = sort_order
        if changes:
            changes["page"] = 1
        if page is not _UNSET:
            changes["page"] = page
        self._states[bucket] = replace(current, **changes)
        return self._states[bucket]

    def bucket_trades(self, bucket: Bucket) -> List[Trade]:
        state = self._states[bucket]
        return categorize(
            self._trades,
            bucket_predicate(bucket, self.viewer_id),
            state.search_term,
            state.status_filter,
            state.sort_order,
            viewer_id=self.viewer_id,
            sort_key=history_key if bucket == Bucket.HISTORY else created_key,
            rank_by_status=bucket in (Bucket.SENT, Bucket.RECEIVED),
        )

    def page(self, bucket: Bucket) -> PageSlice:
        state = self._states[bucket]
        result = paginate(self.bucket_trades(bucket), state.page, self.page_size)
        if result.page != state.page:
            # Remember the clamped cursor so the next request starts from it
            self._states[bucket] = replace(state, page=result.page)
        return result
