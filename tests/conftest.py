"""Shared pytest fixtures."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from barter_offers.models.trade import Trade, TradeStatus
from barter_offers.services.session_registry import SessionRegistry
from barter_offers.upstream import create_upstream_client

SELLER = 1
BUYER = 2
STRANGER = 3


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def trade_payload(
    trade_id: int = 1,
    status="pending",
    buyer_id: int = BUYER,
    seller_id: int = SELLER,
    created_at: Optional[datetime] = None,
    **overrides,
) -> dict:
    """Trade as the marketplace service serializes it."""
    created = created_at or datetime.now(timezone.utc) - timedelta(hours=1)
    payload = {
        "id": trade_id,
        "buyer_id": buyer_id,
        "seller_id": seller_id,
        "target_product_id": 100 + trade_id,
        "status": TradeStatus(status).value,
        "trade_option": "meetup",
        "items": [
            {
                "id": trade_id * 10,
                "product_id": 200 + trade_id,
                "offered_by": "buyer",
                "product_title": f"Offered {trade_id}",
            }
        ],
        "buyer_meetup_confirmed": False,
        "seller_meetup_confirmed": False,
        "buyer_name": "Bea Buyer",
        "seller_name": "Sam Seller",
        "product_title": f"Target {trade_id}",
        "created_at": created.isoformat(),
        "updated_at": None,
    }
    payload.update({k: _iso(v) for k, v in overrides.items()})
    return payload


def make_trade(trade_id: int = 1, status="pending", **kwargs) -> Trade:
    return Trade.model_validate(trade_payload(trade_id, status=status, **kwargs))


_SERVER_RESULTS = {
    "accept": "accepted",
    "decline": "declined",
    "cancel": "cancelled",
    "counter": "countered",
}


def _envelope(status_code: int, data=None, error: Any = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"success": error is None, "data": data, "error": error},
    )


class FakeMarketplace:
    """In-memory marketplace REST service behind ``httpx.MockTransport``."""

    def __init__(self, viewer_id: int = SELLER) -> None:
        self.viewer_id = viewer_id
        self.trades: Dict[int, dict] = {}
        self.products: Dict[int, dict] = {}
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self.rejected: Dict[int, int] = {}
        self.reject_error: Any = "trade status has changed"

    def add_trade(self, trade_id: int = 1, **kwargs) -> dict:
        payload = trade_payload(trade_id, **kwargs)
        self.trades[trade_id] = payload
        return payload

    def writes(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return _envelope(self.fail_status, error="marketplace unavailable")

        parts = request.url.path.strip("/").split("/")
        if parts == [""]:
            return httpx.Response(200, json={"status": "ok"})
        if parts == ["api", "trades"]:
            direction = request.url.params.get("direction")
            key = "seller_id" if direction == "incoming" else "buyer_id"
            return _envelope(
                200, [t for t in self.trades.values() if t[key] == self.viewer_id]
            )
        if parts[:2] == ["api", "trades"] and len(parts) == 3:
            trade_id = int(parts[2])
            if request.method == "PUT":
                return self._put_trade(trade_id, request)
            trade = self.trades.get(trade_id)
            if trade is None:
                return _envelope(404, error="trade not found")
            return _envelope(200, trade)
        if parts[:2] == ["api", "products"] and len(parts) == 3:
            product = self.products.get(int(parts[2]))
            if product is None:
                return _envelope(404, error="product not found")
            return _envelope(200, product)
        return _envelope(404, error="no such endpoint")

    def _put_trade(self, trade_id: int, request: httpx.Request) -> httpx.Response:
        if trade_id in self.rejected:
            return _envelope(self.rejected[trade_id], error=self.reject_error)
        trade = self.trades.get(trade_id)
        if trade is None:
            return _envelope(404, error="trade not found")

        body = json.loads(request.content)
        action = body["action"]
        now = datetime.now(timezone.utc).isoformat()
        trade = dict(trade)
        if action == "confirm_meetup":
            key = (
                "buyer_meetup_confirmed"
                if trade["buyer_id"] == self.viewer_id
                else "seller_meetup_confirmed"
            )
            trade[key] = True
            if body.get("meetup_location"):
                trade["meetup_location"] = body["meetup_location"]
        elif action == "complete":
            key = (
                "buyer_completed" if trade["buyer_id"] == self.viewer_id else "seller_completed"
            )
            trade[key] = True
            if trade.get("buyer_completed") and trade.get("seller_completed"):
                trade["status"] = "completed"
                trade["completed_at"] = now
        else:
            trade["status"] = _SERVER_RESULTS[action]
        if action == "decline":
            trade["decline_feedback"] = body.get("message")
        if action == "counter":
            trade["items"] = [
                {"product_id": pid, "offered_by": "seller"}
                for pid in body.get("counter_offered_product_ids", [])
            ]
            trade["offered_cash_amount"] = body.get("counter_offered_cash_amount")
        trade["updated_at"] = now
        self.trades[trade_id] = trade
        return _envelope(200, trade)


@pytest.fixture
def marketplace():
    return FakeMarketplace()


@pytest.fixture
async def upstream_client(marketplace):
    async with create_upstream_client(
        transport=httpx.MockTransport(marketplace.handler)
    ) as http_client:
        yield http_client


@pytest.fixture
async def client(upstream_client):
    """API client; lifespan does not run under ASGITransport, so state is set here."""
    from barter_offers.main import app

    sessions = SessionRegistry(upstream_client, page_size=2, poll_interval_seconds=0)
    app.state.http_client = upstream_client
    app.state.sessions = sessions
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    await sessions.close()
