"""Tests for notification fan-out and dead-endpoint pruning.

Tests verify:
- Broadcast reaches every subscription
- 2 of 5 permanently failed endpoints are removed, the other 3 retained
- Transient failures are counted but never prune
- A failing delivery never aborts its siblings
- commit=False stages removals until commit_pruning()
- send_to prunes a gone endpoint and skips endpoints already staged as gone
- Each delivery is bounded by the delivery timeout
"""

import asyncio
import json
import random

import pytest

from fxsignal.alerts.registry import SubscriptionRegistry
from fxsignal.exceptions import PermanentDeliveryFailure
from fxsignal.models import Subscription
from fxsignal.notify.dispatcher import DeliveryOutcome, NotificationDispatcher
from fxsignal.notify.payloads import TestPayload
from fxsignal.notify.transport import PushTransport


async def _subscribe(registry: SubscriptionRegistry, keys: dict[str, str], count: int) -> list[str]:
    endpoints = [f"https://push.example/{i}" for i in range(count)]
    for endpoint in endpoints:
        await registry.subscribe(endpoint, keys)
    return endpoints


class ShuffledTransport(PushTransport):
    """Completes deliveries in random order; endpoints in ``gone`` fail permanently."""

    def __init__(self, gone: set[str], seed: int) -> None:
        self.gone = gone
        self._rng = random.Random(seed)

    async def deliver(self, subscription: Subscription, payload: str) -> None:
        await asyncio.sleep(self._rng.random() / 100)
        if subscription.endpoint in self.gone:
            raise PermanentDeliveryFailure(subscription.endpoint, "Gone", status_code=410)


class HangingTransport(PushTransport):
    async def deliver(self, subscription: Subscription, payload: str) -> None:
        await asyncio.sleep(10)


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_reaches_every_subscription(self, registry, dispatcher, transport, keys) -> None:
        endpoints = await _subscribe(registry, keys, 3)

        report = await dispatcher.broadcast(TestPayload())

        assert report.attempted == 3
        assert report.delivered == 3
        assert sorted(e for e, _ in transport.delivered) == sorted(endpoints)
        assert json.loads(transport.delivered[0][1])["tag"] == "test"

    @pytest.mark.asyncio
    async def test_two_of_five_gone_are_removed(self, registry, dispatcher, transport, keys) -> None:
        endpoints = await _subscribe(registry, keys, 5)
        transport.gone = {endpoints[1], endpoints[3]}

        report = await dispatcher.broadcast(TestPayload())

        assert report.delivered == 3
        assert sorted(report.gone_endpoints) == sorted(transport.gone)
        assert report.removed == 2
        remaining = {s.endpoint for s in await registry.subscriptions()}
        assert remaining == {endpoints[0], endpoints[2], endpoints[4]}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    async def test_pruning_independent_of_delivery_order(
        self, registry: SubscriptionRegistry, keys, seed: int
    ) -> None:
        endpoints = await _subscribe(registry, keys, 5)
        gone = {endpoints[0], endpoints[4]}
        dispatcher = NotificationDispatcher(ShuffledTransport(gone, seed), registry)

        await dispatcher.broadcast(TestPayload())

        remaining = {s.endpoint for s in await registry.subscriptions()}
        assert remaining == set(endpoints) - gone

    @pytest.mark.asyncio
    async def test_transient_failures_keep_subscription(
        self, registry, dispatcher, transport, keys
    ) -> None:
        endpoints = await _subscribe(registry, keys, 3)
        transport.flaky = {endpoints[0]}

        report = await dispatcher.broadcast(TestPayload())

        assert report.transient_failures == 1
        assert report.delivered == 2
        assert report.removed == 0
        assert await registry.subscriber_count() == 3

    @pytest.mark.asyncio
    async def test_no_subscribers(self, dispatcher, transport) -> None:
        report = await dispatcher.broadcast(TestPayload())
        assert report.attempted == 0
        assert transport.attempts == []

    @pytest.mark.asyncio
    async def test_delivery_timeout_is_transient(self, registry: SubscriptionRegistry, keys) -> None:
        await _subscribe(registry, keys, 2)
        dispatcher = NotificationDispatcher(HangingTransport(), registry, delivery_timeout=0.05)

        report = await dispatcher.broadcast(TestPayload())

        assert report.transient_failures == 2
        assert await registry.subscriber_count() == 2


class TestStagedPruning:
    @pytest.mark.asyncio
    async def test_commit_false_defers_removal(self, registry, dispatcher, transport, keys) -> None:
        endpoints = await _subscribe(registry, keys, 3)
        transport.gone = {endpoints[2]}

        report = await dispatcher.broadcast(TestPayload(), commit=False)

        assert report.gone_endpoints == [endpoints[2]]
        assert report.removed == 0
        assert await registry.subscriber_count() == 3

        removed = await dispatcher.commit_pruning()

        assert removed == 1
        assert await registry.subscriber_count() == 2
        assert await dispatcher.commit_pruning() == 0

    @pytest.mark.asyncio
    async def test_staged_endpoint_not_retried(self, registry, dispatcher, transport, keys) -> None:
        endpoints = await _subscribe(registry, keys, 2)
        transport.gone = {endpoints[0]}

        await dispatcher.broadcast(TestPayload(), commit=False)
        transport.attempts.clear()
        await dispatcher.broadcast(TestPayload(), commit=False)

        assert transport.attempts == [endpoints[1]]


class TestSendTo:
    @pytest.mark.asyncio
    async def test_delivered(self, registry, dispatcher, transport, keys) -> None:
        subscription, _ = await registry.subscribe("https://push.example/a", keys)
        outcome = await dispatcher.send_to(subscription, TestPayload())
        assert outcome is DeliveryOutcome.DELIVERED
        assert len(transport.delivered) == 1

    @pytest.mark.asyncio
    async def test_gone_endpoint_pruned(self, registry, dispatcher, transport, keys) -> None:
        subscription, _ = await registry.subscribe("https://push.example/a", keys)
        transport.gone = {subscription.endpoint}

        outcome = await dispatcher.send_to(subscription, TestPayload())

        assert outcome is DeliveryOutcome.PERMANENT_FAILURE
        assert await registry.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_staged_endpoint_skipped(self, registry, dispatcher, transport, keys) -> None:
        subscription, _ = await registry.subscribe("https://push.example/a", keys)
        transport.gone = {subscription.endpoint}
        await dispatcher.broadcast(TestPayload(), commit=False)
        transport.attempts.clear()

        outcome = await dispatcher.send_to(subscription, TestPayload(), commit=False)

        assert outcome is DeliveryOutcome.PERMANENT_FAILURE
        assert transport.attempts == []
        assert await dispatcher.commit_pruning() == 1
