from typing import Dict, Iterable, List

from barter_offers.models.trade import ONGOING_STATUSES, Trade, TradeStatus
from barter_offers.schemas.trade import TradeCounts


def dedupe(trades: Iterable[Trade]) -> List[Trade]:
    """One entry per trade id, keeping the last occurrence."""
    by_id: Dict[int, Trade] = {}
    for trade in trades:
        by_id[trade.id] = trade
    return list(by_id.values())


def compute_counts(trades: Iterable[Trade], viewer_id: int) -> TradeCounts:
    """Badge counts over the raw, unfiltered trade list.

    Always recomputed from scratch; never adjusted incrementally.
    """
    counts = TradeCounts()
    for trade in dedupe(trades):
        if trade.status == TradeStatus.PENDING:
            if trade.buyer_id == viewer_id:
                counts.sent_pending += 1
            if trade.seller_id == viewer_id:
                counts.received_pending += 1
        elif trade.status in ONGOING_STATUSES:
            counts.ongoing += 1
        elif trade.status == TradeStatus.COMPLETED:
            counts.completed += 1
    return counts
