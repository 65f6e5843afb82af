"""Subscription and price-alert registry.

Single owner of the subscription list and the price-alert list. Every
mutation runs under one asyncio.Lock, so a broadcast snapshot, a
subscribe, a pruning batch and an alert trigger never interleave.
When a store is attached, each mutation is written to SQLite first and
only then applied in memory, so a failed write leaves both sides unchanged.
"""

from __future__ import annotations

import asyncio
import secrets
import time
import uuid
from typing import TYPE_CHECKING

from fxsignal.exceptions import SubscriptionNotFound
from fxsignal.logging import get_logger
from fxsignal.models import AlertDirection, PriceAlert, Subscription

if TYPE_CHECKING:
    from fxsignal.data.store import EngineStore

logger = get_logger(__name__)


def generate_subscriber_id() -> str:
    """Opaque, unguessable id handed back to the subscribing client."""
    return secrets.token_hex(12)


class SubscriptionRegistry:
    """In-memory registry of push subscriptions and price alerts.

    Args:
        store: Optional SQLite store for write-through persistence.
    """

    def __init__(self, store: EngineStore | None = None) -> None:
        self._store = store
        self._subscriptions: dict[str, Subscription] = {}
        self._alerts: dict[str, PriceAlert] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        """Populate the registry from the store. No-op without a store."""
        if self._store is None:
            return
        subscriptions = await self._store.load_subscriptions()
        alerts = await self._store.load_alerts()
        async with self._lock:
            self._subscriptions = {s.endpoint: s for s in subscriptions}
            self._alerts = {a.id: a for a in alerts}
        logger.info(
            "registry_loaded",
            subscriptions=len(subscriptions),
            alerts=len(alerts),
        )

    # ──────────────────────────────────────────────
    # Subscriptions
    # ──────────────────────────────────────────────

    async def subscribe(
        self,
        endpoint: str,
        keys: dict[str, str],
        expiration_time: float | None = None,
    ) -> tuple[Subscription, bool]:
        """Register an endpoint.

        Returns:
            (subscription, created). An already-registered endpoint returns
            the existing subscription with created=False.
        """
        async with self._lock:
            existing = self._subscriptions.get(endpoint)
            if existing is not None:
                return existing, False
            subscription = Subscription(
                endpoint=endpoint,
                keys=dict(keys),
                subscriber_id=generate_subscriber_id(),
                expiration_time=expiration_time,
            )
            if self._store is not None:
                await self._store.save_subscription(subscription)
            self._subscriptions[endpoint] = subscription
            total = len(self._subscriptions)

        logger.info(
            "subscription_added",
            subscriber_id=subscription.subscriber_id,
            total=total,
        )
        return subscription, True

    async def unsubscribe(self, endpoint: str) -> bool:
        """Remove one endpoint. Returns False when it was not registered."""
        return await self.remove_subscriptions([endpoint]) > 0

    async def remove_subscriptions(self, endpoints: list[str]) -> int:
        """Remove a batch of endpoints. Returns the number actually removed."""
        async with self._lock:
            removed = [e for e in dict.fromkeys(endpoints) if e in self._subscriptions]
            if removed and self._store is not None:
                await self._store.delete_subscriptions(removed)
            for endpoint in removed:
                del self._subscriptions[endpoint]
            remaining = len(self._subscriptions)

        if removed:
            logger.info("subscriptions_removed", removed=len(removed), remaining=remaining)
        return len(removed)

    async def subscriptions(self) -> list[Subscription]:
        """Snapshot of all current subscriptions."""
        async with self._lock:
            return list(self._subscriptions.values())

    async def subscriber_count(self) -> int:
        async with self._lock:
            return len(self._subscriptions)

    async def get_by_subscriber_id(self, subscriber_id: str) -> Subscription | None:
        async with self._lock:
            for subscription in self._subscriptions.values():
                if subscription.subscriber_id == subscriber_id:
                    return subscription
        return None

    # ──────────────────────────────────────────────
    # Price alerts
    # ──────────────────────────────────────────────

    async def add_alert(
        self,
        subscriber_id: str,
        pair_id: str,
        target_price: float,
        direction: AlertDirection,
    ) -> PriceAlert:
        """Create an untriggered alert for an existing subscriber.

        Raises:
            SubscriptionNotFound: subscriber_id is not registered.
        """
        async with self._lock:
            if not any(s.subscriber_id == subscriber_id for s in self._subscriptions.values()):
                raise SubscriptionNotFound(f"unknown subscriber: {subscriber_id}")
            alert = PriceAlert(
                id=uuid.uuid4().hex,
                subscriber_id=subscriber_id,
                pair_id=pair_id,
                target_price=target_price,
                direction=direction,
            )
            if self._store is not None:
                await self._store.save_alert(alert)
            self._alerts[alert.id] = alert

        logger.info(
            "price_alert_added",
            alert_id=alert.id,
            pair_id=pair_id,
            direction=direction.value,
            target_price=target_price,
        )
        return alert

    async def untriggered_alerts(self, pair_id: str | None = None) -> list[PriceAlert]:
        async with self._lock:
            return [
                a
                for a in self._alerts.values()
                if not a.triggered and (pair_id is None or a.pair_id == pair_id)
            ]

    async def trigger_matching(self, pair_id: str, rate: float) -> list[PriceAlert]:
        """Mark every untriggered alert for ``pair_id`` satisfied by ``rate``.

        Checking and marking happen under one lock acquisition, so an alert
        is returned by at most one call over its lifetime. If the store
        write fails the alerts are unmarked and the error propagates, so a
        later cycle evaluates them again.
        """
        now = time.time()
        async with self._lock:
            fired = [
                a
                for a in self._alerts.values()
                if a.pair_id == pair_id and not a.triggered and a.is_satisfied_by(rate)
            ]
            for alert in fired:
                alert.triggered = True
                alert.triggered_at = now
            if fired and self._store is not None:
                try:
                    await self._store.mark_alerts_triggered(fired)
                except Exception:
                    for alert in fired:
                        alert.triggered = False
                        alert.triggered_at = None
                    raise
        return fired
