"""
Integration tests: the API over an in-memory marketplace served by httpx.MockTransport.
"""

from tests.conftest import BUYER, SELLER

SELLER_HEADERS = {"X-User-ID": str(SELLER), "Authorization": "Bearer seller-token"}


class TestAuth:
    async def test_missing_user_header_returns_401(self, client):
        resp = await client.get("/api/v1/offers/received")
        assert resp.status_code == 401

    async def test_non_numeric_user_header_returns_401(self, client):
        resp = await client.get("/api/v1/offers/received", headers={"X-User-ID": "abc"})
        assert resp.status_code == 401

    async def test_bearer_token_forwarded_upstream(self, client, marketplace):
        await client.get("/api/v1/offers/counts", headers=SELLER_HEADERS)
        assert marketplace.requests[0].headers["Authorization"] == "Bearer seller-token"


class TestOfferPages:
    async def test_received_page(self, client, marketplace):
        for trade_id in (1, 2, 3):
            marketplace.add_trade(trade_id)

        resp = await client.get("/api/v1/offers/received", headers=SELLER_HEADERS)

        assert resp.status_code == 200
        body = resp.json()
        assert body["bucket"] == "received"
        assert body["total_items"] == 3
        assert body["total_pages"] == 2
        assert len(body["items"]) == 2
        assert body["stale"] is False
        assert body["items"][0]["available_actions"] == ["accept", "decline", "counter"]

    async def test_page_past_end_is_clamped(self, client, marketplace):
        for trade_id in (1, 2, 3):
            marketplace.add_trade(trade_id)

        resp = await client.get(
            "/api/v1/offers/received", params={"page": 5}, headers=SELLER_HEADERS
        )

        assert resp.json()["page"] == 2

    async def test_cursor_remembered_between_requests(self, client, marketplace):
        for trade_id in (1, 2, 3):
            marketplace.add_trade(trade_id)
        await client.get("/api/v1/offers/received", params={"page": 2}, headers=SELLER_HEADERS)

        resp = await client.get("/api/v1/offers/received", headers=SELLER_HEADERS)

        assert resp.json()["page"] == 2

    async def test_search_and_status_filter(self, client, marketplace):
        marketplace.add_trade(1, product_title="Camping tent")
        marketplace.add_trade(2, status="countered", product_title="Tent pegs")

        resp = await client.get(
            "/api/v1/offers/received",
            params={"search": "tent", "status": "countered"},
            headers=SELLER_HEADERS,
        )

        assert [t["id"] for t in resp.json()["items"]] == [2]

    async def test_unknown_bucket_returns_422(self, client):
        resp = await client.get("/api/v1/offers/archive", headers=SELLER_HEADERS)
        assert resp.status_code == 422

    async def test_page_zero_returns_422(self, client):
        resp = await client.get(
            "/api/v1/offers/sent", params={"page": 0}, headers=SELLER_HEADERS
        )
        assert resp.status_code == 422

    async def test_counts(self, client, marketplace):
        marketplace.add_trade(1)
        marketplace.add_trade(2, status="accepted")
        marketplace.add_trade(3, status="completed")

        resp = await client.get("/api/v1/offers/counts", headers=SELLER_HEADERS)

        assert resp.json() == {
            "sent_pending": 0,
            "received_pending": 1,
            "ongoing": 1,
            "completed": 1,
        }

    async def test_stale_list_still_served(self, client, marketplace):
        marketplace.add_trade(1)
        await client.get("/api/v1/offers/received", headers=SELLER_HEADERS)
        marketplace.fail_status = 503

        refresh = await client.post("/api/v1/trades/refresh", headers=SELLER_HEADERS)
        page = await client.get("/api/v1/offers/received", headers=SELLER_HEADERS)

        assert refresh.status_code == 200
        assert refresh.json()["stale"] is True
        assert page.json()["stale"] is True
        assert page.json()["total_items"] == 1


class TestActions:
    async def test_accept_returns_updated_trade(self, client, marketplace):
        marketplace.add_trade(1)

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "accept"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "accepted"
        ongoing = await client.get("/api/v1/offers/ongoing", headers=SELLER_HEADERS)
        assert [t["id"] for t in ongoing.json()["items"]] == [1]

    async def test_illegal_transition_returns_409(self, client, marketplace):
        marketplace.add_trade(1, status="accepted")

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "accept"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 409
        assert resp.json()["refresh_required"] is False
        assert marketplace.writes() == []

    async def test_terminal_trade_returns_409_refresh_required(self, client, marketplace):
        marketplace.add_trade(1, status="cancelled")

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "decline"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 409
        assert resp.json()["refresh_required"] is True

    async def test_complete_before_meetup_names_next_step(self, client, marketplace):
        marketplace.add_trade(1, status="accepted")

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "complete"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 409
        assert resp.json()["next_step"] == "confirm_meetup"

    async def test_wrong_party_returns_409(self, client, marketplace):
        marketplace.viewer_id = BUYER
        marketplace.add_trade(1)

        resp = await client.post(
            "/api/v1/trades/1/actions",
            json={"action": "accept"},
            headers={"X-User-ID": str(BUYER)},
        )

        assert resp.status_code == 409

    async def test_server_conflict_returns_409_refresh_required(self, client, marketplace):
        marketplace.add_trade(1)
        marketplace.rejected[1] = 409

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "accept"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 409
        assert resp.json()["refresh_required"] is True

    async def test_marketplace_outage_returns_503_with_retry_after(self, client, marketplace):
        marketplace.add_trade(1)
        marketplace.rejected[1] = 503

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "accept"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "15"

    async def test_marketplace_refusing_credentials_returns_403(self, client, marketplace):
        marketplace.add_trade(1)
        marketplace.rejected[1] = 401

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "accept"}, headers=SELLER_HEADERS
        )

        assert resp.status_code == 403
        trades = await client.get("/api/v1/trades", headers=SELLER_HEADERS)
        assert trades.json()[0]["status"] == "pending"

    async def test_complete_by_one_party_awaits_the_other(self, client, marketplace):
        marketplace.add_trade(1, status="active", meetup_confirmed=True)

        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "complete"}, headers=SELLER_HEADERS
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["status"] == "active"
        assert body["seller_completed"] is True
        assert body["buyer_completed"] is False
        assert body["awaiting_other_party"] is True

    async def test_invalid_action_returns_422(self, client):
        resp = await client.post(
            "/api/v1/trades/1/actions", json={"action": "fly"}, headers=SELLER_HEADERS
        )
        assert resp.status_code == 422

    async def test_declined_trade_only_in_raw_list(self, client, marketplace):
        marketplace.add_trade(1)

        await client.post(
            "/api/v1/trades/1/actions",
            json={"action": "decline", "message": "Not for me"},
            headers=SELLER_HEADERS,
        )
        received = await client.get("/api/v1/offers/received", headers=SELLER_HEADERS)
        raw = await client.get("/api/v1/trades", headers=SELLER_HEADERS)

        assert received.json()["total_items"] == 0
        assert raw.json()[0]["status"] == "declined"
        assert raw.json()[0]["decline_feedback"] == "Not for me"


class TestEvents:
    async def test_push_event_triggers_refresh(self, client, marketplace):
        await client.get("/api/v1/offers/counts", headers=SELLER_HEADERS)
        marketplace.add_trade(1)

        resp = await client.post(
            "/api/v1/events",
            json={"type": "trade_created", "data": {"trade_id": 1}},
            headers=SELLER_HEADERS,
        )

        assert resp.status_code == 202
        assert resp.json()["applied"] is True
        counts = await client.get("/api/v1/offers/counts", headers=SELLER_HEADERS)
        assert counts.json()["received_pending"] == 1

    async def test_unrelated_event_is_ignored(self, client):
        resp = await client.post(
            "/api/v1/events", json={"type": "chat_message"}, headers=SELLER_HEADERS
        )
        assert resp.status_code == 202
        assert resp.json()["applied"] is False


class TestHealth:
    async def test_health_reports_upstream_and_sessions(self, client):
        await client.get("/api/v1/offers/counts", headers=SELLER_HEADERS)

        resp = await client.get("/api/v1/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "marketplace": "ok", "sessions": 1}

    async def test_health_degraded_when_upstream_fails(self, client, marketplace):
        marketplace.fail_status = 502

        resp = await client.get("/api/v1/health")

        assert resp.json()["status"] == "degraded"

    async def test_correlation_id_echoed(self, client):
        resp = await client.get("/api/v1/health", headers={"X-Correlation-ID": "abc-123"})
        assert resp.headers["X-Correlation-ID"] == "abc-123"

    async def test_correlation_id_generated_when_absent(self, client):
        first = await client.get("/api/v1/health")
        second = await client.get("/api/v1/health")

        assert len(first.headers["X-Correlation-ID"]) == 32
        assert first.headers["X-Correlation-ID"] != second.headers["X-Correlation-ID"]
