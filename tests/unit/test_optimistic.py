from barter_offers.models.trade import TradeStatus
from barter_offers.schemas.trade import TradeAction
from barter_offers.services.optimistic import (
    PendingAction,
    acknowledge,
    reduce_trades,
    rollback,
    settle,
)
from tests.conftest import make_trade


def server_list(*trades):
    return {t.id: t for t in trades}


class TestOptimisticOverlay:
    def test_provisional_trade_shadows_server_copy(self):
        server = server_list(make_trade(1), make_trade(2))
        pending = [PendingAction(1, 1, TradeAction.ACCEPT, make_trade(1, "accepted"))]

        view = reduce_trades(server, pending)

        assert view[1].status == TradeStatus.ACCEPTED
        assert view[2].status == TradeStatus.PENDING
        assert server[1].status == TradeStatus.PENDING

    def test_overlay_for_missing_trade_is_ignored(self):
        pending = [PendingAction(1, 9, TradeAction.ACCEPT, make_trade(9, "accepted"))]
        assert reduce_trades(server_list(make_trade(1)), pending).keys() == {1}

    def test_rollback_restores_server_state(self):
        server = server_list(make_trade(1))
        pending = [PendingAction(1, 1, TradeAction.ACCEPT, make_trade(1, "accepted"))]

        pending = rollback(pending, token=1)

        assert pending == []
        assert reduce_trades(server, pending)[1].status == TradeStatus.PENDING

    def test_acknowledged_overlay_settles_after_later_refresh(self):
        pending = [PendingAction(1, 1, TradeAction.ACCEPT, make_trade(1, "accepted"))]
        pending = acknowledge(pending, 1, make_trade(1, "accepted"), sequence=4)

        # a refresh issued before the acknowledgement keeps the overlay
        assert len(settle(pending, applied_sequence=4)) == 1
        assert settle(pending, applied_sequence=5) == []

    def test_unacknowledged_overlay_survives_refresh(self):
        pending = [PendingAction(1, 1, TradeAction.DECLINE, make_trade(1, "declined"))]
        assert settle(pending, applied_sequence=10) == pending

    def test_server_wins_once_settled(self):
        pending = acknowledge(
            [PendingAction(1, 1, TradeAction.ACCEPT, make_trade(1, "accepted"))],
            1,
            make_trade(1, "accepted"),
            sequence=1,
        )
        # the server moved on (e.g. declined elsewhere); its version is shown
        server = server_list(make_trade(1, "active"))
        assert reduce_trades(server, settle(pending, 2))[1].status == TradeStatus.ACTIVE
