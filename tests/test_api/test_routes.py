"""Tests for the JSON API routes.

Tests verify:
- Subscribe is idempotent per endpoint and hands back the subscriber id
- Malformed bodies are rejected with 400 and field errors
- set-alert resolves pair and subscriber, 404 otherwise
- /status reports has_data and cycle counters
- /api/pairs, /api/risk-settings and /api/trades round trips
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fxsignal.api.app import create_app
from fxsignal.orchestrator import EngineContext, Orchestrator


async def _prefill(context: EngineContext, make_points) -> None:
    for point in make_points([150.0 + 0.1 * (-1) ** i for i in range(25)]):
        await context.history.append("USD_JPY", point)


@pytest_asyncio.fixture
async def client(engine_context: EngineContext, orchestrator: Orchestrator):
    app = create_app()
    app.state.context = engine_context
    app.state.orchestrator = orchestrator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def _subscribe(client: AsyncClient, keys, endpoint: str = "https://push.example/a") -> str:
    response = await client.post("/subscribe", json={"endpoint": endpoint, "keys": keys})
    return response.json()["userId"]


class TestPushRoutes:
    @pytest.mark.asyncio
    async def test_vapid_public_key(self, client: AsyncClient) -> None:
        response = await client.get("/vapid-public-key")
        assert response.json() == {"publicKey": "test-public-key"}

    @pytest.mark.asyncio
    async def test_subscribe_idempotent(self, client: AsyncClient, keys, registry) -> None:
        body = {"endpoint": "https://push.example/a", "keys": keys, "expirationTime": None}

        first = await client.post("/subscribe", json=body)
        second = await client.post("/subscribe", json=body)

        assert first.status_code == 201
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert second.json()["userId"] == first.json()["userId"]
        assert await registry.subscriber_count() == 1

    @pytest.mark.asyncio
    async def test_subscribe_missing_keys(self, client: AsyncClient) -> None:
        response = await client.post("/subscribe", json={"endpoint": "https://push.example/a"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert any(e["field"] == "keys" for e in response.json()["errors"])

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: AsyncClient) -> None:
        response = await client.post(
            "/subscribe", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON body"

    @pytest.mark.asyncio
    async def test_unsubscribe(self, client: AsyncClient, keys) -> None:
        await _subscribe(client, keys)

        first = await client.post("/unsubscribe", json={"endpoint": "https://push.example/a"})
        second = await client.post("/unsubscribe", json={"endpoint": "https://push.example/a"})

        assert first.json()["removed"] == 1
        assert second.json()["removed"] == 0

    @pytest.mark.asyncio
    async def test_set_alert(self, client: AsyncClient, keys, registry) -> None:
        user_id = await _subscribe(client, keys)

        response = await client.post(
            "/set-alert",
            json={"userId": user_id, "pairId": "USD_JPY", "targetPrice": 150.0, "direction": "above"},
        )

        assert response.status_code == 200
        alerts = await registry.untriggered_alerts("USD_JPY")
        assert [a.id for a in alerts] == [response.json()["alertId"]]

    @pytest.mark.asyncio
    async def test_set_alert_unknown_subscriber(self, client: AsyncClient) -> None:
        response = await client.post(
            "/set-alert",
            json={"userId": "nobody", "pairId": "USD_JPY", "targetPrice": 150.0, "direction": "above"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_set_alert_unknown_pair(self, client: AsyncClient, keys) -> None:
        user_id = await _subscribe(client, keys)
        response = await client.post(
            "/set-alert",
            json={"userId": user_id, "pairId": "XAU_USD", "targetPrice": 2000, "direction": "above"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [{"targetPrice": -1}, {"targetPrice": 0}, {"direction": "sideways"}, {"targetPrice": "abc"}],
    )
    async def test_set_alert_validation(self, client: AsyncClient, keys, overrides) -> None:
        user_id = await _subscribe(client, keys)
        body = {"userId": user_id, "pairId": "USD_JPY", "targetPrice": 150.0, "direction": "above"}
        body.update(overrides)

        response = await client.post("/set-alert", json=body)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_status_before_data(self, client: AsyncClient) -> None:
        status = (await client.get("/status")).json()

        assert status["has_data"] is False
        assert status["subscribers"] == 0
        assert status["cycles"]["refresh"] == {"runs": 0, "skipped": 0}

    @pytest.mark.asyncio
    async def test_send_test_notification(self, client: AsyncClient, keys, transport) -> None:
        await _subscribe(client, keys, "https://push.example/a")
        await _subscribe(client, keys, "https://push.example/b")
        transport.gone = {"https://push.example/b"}

        body = (await client.post("/send-test-notification")).json()

        assert body["success"] is True
        assert body["attempted"] == 2
        assert body["delivered"] == 1
        assert body["removed"] == 1


class TestApiRoutes:
    @pytest.mark.asyncio
    async def test_pairs(
        self, client: AsyncClient, orchestrator: Orchestrator, engine_context, make_points
    ) -> None:
        await _prefill(engine_context, make_points)
        await orchestrator.run_refresh_cycle()

        body = (await client.get("/api/pairs")).json()

        assert body["source"] == "frankfurter"
        assert body["live"] is True
        assert len(body["pairs"]) == 6
        first = body["pairs"][0]
        assert first["id"] == "USD_JPY"
        assert first["symbol"] == "USD/JPY"
        assert first["analysis"]["sufficientData"] is True
        assert isinstance(first["analysis"]["riskPlan"]["optimalLots"], str)
        # oldest prefilled point is 150.1, newest is the live 150.0
        assert first["analysis"]["changePct"] == pytest.approx((150.0 - 150.1) / 150.1 * 100)
        placeholder = body["pairs"][-1]["analysis"]
        assert placeholder["signal"] == "insufficient-data"
        assert placeholder["recommendation"] == "collecting data"
        assert placeholder["changePct"] == 0.0

    @pytest.mark.asyncio
    async def test_pairs_before_first_cycle(self, client: AsyncClient) -> None:
        body = (await client.get("/api/pairs")).json()
        assert body["source"] is None
        assert all(p["analysis"] is None for p in body["pairs"])

    @pytest.mark.asyncio
    async def test_risk_settings_round_trip(self, client: AsyncClient) -> None:
        assert (await client.get("/api/risk-settings")).json()["riskPercent"] == "2"

        response = await client.put("/api/risk-settings", json={"riskPercent": 1, "leverage": 25})

        assert response.status_code == 200
        assert response.json()["riskPercent"] == "1"
        assert response.json()["leverage"] == 25
        assert (await client.get("/api/risk-settings")).json()["leverage"] == 25

    @pytest.mark.asyncio
    async def test_risk_settings_rejects_out_of_range(self, client: AsyncClient) -> None:
        response = await client.put("/api/risk-settings", json={"riskPercent": 150})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_trade_lifecycle(
        self, client: AsyncClient, orchestrator: Orchestrator, engine_context, make_points
    ) -> None:
        await _prefill(engine_context, make_points)
        await orchestrator.run_refresh_cycle()

        created = await client.post("/api/trades", json={"pairId": "USD_JPY", "direction": "buy"})
        assert created.status_code == 201
        trade_id = created.json()["id"]

        closed = await client.post(f"/api/trades/{trade_id}/close", json={"outcome": "profit"})
        assert closed.status_code == 200
        assert closed.json()["status"] == "closed"
        assert not closed.json()["profit"].startswith("-")

        body = (await client.get("/api/trades")).json()
        assert [t["id"] for t in body["trades"]] == [trade_id]
        assert body["stats"]["closedTrades"] == 1
        assert body["stats"]["winRate"] == "100.0"

    @pytest.mark.asyncio
    async def test_trade_rejected_while_collecting(
        self, client: AsyncClient, orchestrator: Orchestrator
    ) -> None:
        await orchestrator.run_refresh_cycle()

        response = await client.post("/api/trades", json={"pairId": "EUR_JPY", "direction": "buy"})

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_trade_unknown_pair(self, client: AsyncClient) -> None:
        response = await client.post("/api/trades", json={"pairId": "XAU_USD", "direction": "buy"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_close_unknown_trade(self, client: AsyncClient) -> None:
        response = await client.post("/api/trades/missing/close", json={"outcome": "loss"})
        assert response.status_code == 404
