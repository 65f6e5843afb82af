"""Tests for per-pair alert evaluation.

Tests verify:
- A move at or above the threshold broadcasts exactly one volatility alert
- No volatility alert without subscribers or without a previous rate
- A user alert fires once and never again after the rate retraces
- An alert whose owner has unsubscribed is marked triggered and skipped
- commit=False leaves gone endpoints staged
"""

import json

import pytest

from fxsignal.alerts.evaluator import AlertEvaluator, percent_change
from fxsignal.alerts.registry import SubscriptionRegistry
from fxsignal.models import AlertDirection, PairSpec
from fxsignal.notify.dispatcher import NotificationDispatcher


@pytest.fixture
def evaluator(registry: SubscriptionRegistry, dispatcher: NotificationDispatcher) -> AlertEvaluator:
    return AlertEvaluator(registry, dispatcher, threshold_pct=0.5, icon="/i.png", badge="/b.png")


def _kinds(transport) -> list[str]:
    return [json.loads(payload)["data"]["type"] for _, payload in transport.delivered]


class TestPercentChange:
    def test_values(self) -> None:
        assert percent_change(150.75, 150.0) == pytest.approx(0.5)
        assert percent_change(149.25, 150.0) == pytest.approx(-0.5)


class TestVolatility:
    @pytest.mark.asyncio
    async def test_large_move_broadcasts_once(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy: PairSpec
    ) -> None:
        await registry.subscribe("https://push.example/a", keys)

        report = await evaluator.evaluate(usd_jpy, 150.93, 150.0)

        assert report.volatility_sent is True
        assert report.change_pct == pytest.approx(0.62)
        assert _kinds(transport) == ["volatility"]
        wire = json.loads(transport.delivered[0][1])
        assert wire["data"]["change"] == 0.62
        assert wire["data"]["pairId"] == "USD_JPY"
        assert wire["icon"] == "/i.png"
        assert wire["badge"] == "/b.png"

    @pytest.mark.asyncio
    async def test_downward_move_counts(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy: PairSpec
    ) -> None:
        await registry.subscribe("https://push.example/a", keys)

        report = await evaluator.evaluate(usd_jpy, 149.0, 150.0)

        assert report.volatility_sent is True
        assert json.loads(transport.delivered[0][1])["data"]["change"] == -0.67

    @pytest.mark.asyncio
    async def test_small_move_is_quiet(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy: PairSpec
    ) -> None:
        await registry.subscribe("https://push.example/a", keys)

        report = await evaluator.evaluate(usd_jpy, 150.3, 150.0)

        assert report.volatility_sent is False
        assert report.change_pct == pytest.approx(0.2)
        assert transport.delivered == []

    @pytest.mark.asyncio
    async def test_no_subscribers(self, evaluator: AlertEvaluator, transport, usd_jpy) -> None:
        report = await evaluator.evaluate(usd_jpy, 160.0, 150.0)

        assert report.volatility_sent is False
        assert report.change_pct is None
        assert transport.attempts == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("previous", [None, 0.0])
    async def test_no_previous_rate(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy, previous
    ) -> None:
        await registry.subscribe("https://push.example/a", keys)

        report = await evaluator.evaluate(usd_jpy, 150.0, previous)

        assert report.volatility_sent is False
        assert transport.delivered == []

    @pytest.mark.asyncio
    async def test_staged_pruning(
        self, evaluator: AlertEvaluator, registry, dispatcher, transport, keys, usd_jpy
    ) -> None:
        await registry.subscribe("https://push.example/a", keys)
        await registry.subscribe("https://push.example/b", keys)
        transport.gone = {"https://push.example/b"}

        await evaluator.evaluate(usd_jpy, 152.0, 150.0, commit=False)

        assert await registry.subscriber_count() == 2
        assert await dispatcher.commit_pruning() == 1
        assert await registry.subscriber_count() == 1


class TestPriceAlerts:
    @pytest.mark.asyncio
    async def test_fires_once_across_retrace(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy: PairSpec
    ) -> None:
        subscription, _ = await registry.subscribe("https://push.example/a", keys)
        alert = await registry.add_alert(
            subscription.subscriber_id, "USD_JPY", 150.0, AlertDirection.ABOVE
        )

        rates = [149.80, 150.02, 149.90, 150.10]
        reports = []
        previous = None
        for rate in rates:
            reports.append(await evaluator.evaluate(usd_jpy, rate, previous))
            previous = rate

        assert [r.fired_alert_ids for r in reports] == [[], [alert.id], [], []]
        assert _kinds(transport) == ["user-alert"]
        wire = json.loads(transport.delivered[0][1])
        assert wire["data"]["alertId"] == alert.id
        assert wire["data"]["currentRate"] == 150.02
        assert reports[1].delivered_alerts == 1

    @pytest.mark.asyncio
    async def test_only_owner_receives_alert(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy: PairSpec
    ) -> None:
        owner, _ = await registry.subscribe("https://push.example/owner", keys)
        await registry.subscribe("https://push.example/other", keys)
        await registry.add_alert(owner.subscriber_id, "USD_JPY", 150.0, AlertDirection.BELOW)

        await evaluator.evaluate(usd_jpy, 149.95, 149.96)

        assert [e for e, _ in transport.delivered] == ["https://push.example/owner"]

    @pytest.mark.asyncio
    async def test_other_pairs_ignored(
        self, evaluator: AlertEvaluator, registry, transport, keys, eur_usd: PairSpec
    ) -> None:
        subscription, _ = await registry.subscribe("https://push.example/a", keys)
        await registry.add_alert(subscription.subscriber_id, "USD_JPY", 1.0, AlertDirection.ABOVE)

        report = await evaluator.evaluate(eur_usd, 1.09, 1.09)

        assert report.fired_alert_ids == []
        assert transport.delivered == []

    @pytest.mark.asyncio
    async def test_dangling_owner_skipped(
        self, evaluator: AlertEvaluator, registry, transport, keys, usd_jpy: PairSpec
    ) -> None:
        subscription, _ = await registry.subscribe("https://push.example/a", keys)
        alert = await registry.add_alert(
            subscription.subscriber_id, "USD_JPY", 150.0, AlertDirection.ABOVE
        )
        await registry.unsubscribe("https://push.example/a")

        report = await evaluator.evaluate(usd_jpy, 151.0, None)

        assert report.fired_alert_ids == [alert.id]
        assert report.dangling_alerts == 1
        assert alert.triggered is True
        assert transport.attempts == []
        assert (await evaluator.evaluate(usd_jpy, 152.0, 151.0)).fired_alert_ids == []
