"""Optimistic action overlay.

A submitted action is shown immediately as a provisional trade layered over
the server's list. The overlay is dropped as soon as a refresh issued after
the server acknowledged the write is applied; from then on the server's
version wins, whatever it says. A failed write removes its overlay entirely.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional

from barter_offers.models.trade import Trade
from barter_offers.schemas.trade import TradeAction


@dataclass(frozen=True)
class PendingAction:
    token: int
    trade_id: int
    action: TradeAction
    provisional: Trade
    # Latest refresh sequence when the server acknowledged the write;
    # None while the write is still in flight
    acknowledged_at: Optional[int] = None


def reduce_trades(
    server: Mapping[int, Trade], pending: Iterable[PendingAction]
) -> Dict[int, Trade]:
    """Server trades with every pending action's provisional trade on top."""
    view = dict(server)
    for action in pending:
        if action.trade_id in view:
            view[action.trade_id] = action.provisional
    return view


def acknowledge(
    pending: List[PendingAction], token: int, confirmed: Trade, sequence: int
) -> List[PendingAction]:
    return [
        replace(p, provisional=confirmed, acknowledged_at=sequence) if p.token == token else p
        for p in pending
    ]


def rollback(pending: List[PendingAction], token: int) -> List[PendingAction]:
    return [p for p in pending if p.token != token]


def settle(pending: List[PendingAction], applied_sequence: int) -> List[PendingAction]:
    """Drop overlays that a refresh with ``applied_sequence`` already reflects."""
    return [
        p
        for p in pending
        if p.acknowledged_at is None or p.acknowledged_at >= applied_sequence
    ]
