"""Notification fan-out with dead-endpoint pruning.

broadcast() delivers one payload to every current subscription concurrently
via asyncio.gather. A failing endpoint never aborts its siblings. Endpoints
reported permanently gone are collected and removed from the registry in a
single batch after every delivery of the batch has finished.

Inside a monitor cycle several pairs may broadcast at once. The cycle then
passes commit=False so removals are only staged, and calls commit_pruning()
once all per-pair work is done. Staged endpoints are not retried within the
same cycle.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from fxsignal.exceptions import PermanentDeliveryFailure, TransientDeliveryFailure
from fxsignal.logging import get_logger
from fxsignal.notify.payloads import Payload, serialize

if TYPE_CHECKING:
    from fxsignal.alerts.registry import SubscriptionRegistry
    from fxsignal.models import Subscription
    from fxsignal.notify.transport import PushTransport

logger = get_logger(__name__)


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass
class DispatchReport:
    """Summary of one broadcast."""

    attempted: int = 0
    delivered: int = 0
    transient_failures: int = 0
    gone_endpoints: list[str] = field(default_factory=list)
    removed: int = 0


class NotificationDispatcher:
    """Sends payloads to one or all subscriptions and prunes dead endpoints.

    Args:
        transport: Push transport used for every delivery.
        registry: Subscription registry (read for broadcast, written for pruning).
        delivery_timeout: Outer bound on a single delivery, in seconds.
    """

    def __init__(
        self,
        transport: PushTransport,
        registry: SubscriptionRegistry,
        delivery_timeout: float = 10.0,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._delivery_timeout = delivery_timeout
        self._staged: set[str] = set()
        self._stage_lock = asyncio.Lock()

    async def _deliver(self, subscription: Subscription, body: str) -> DeliveryOutcome:
        try:
            await asyncio.wait_for(
                self._transport.deliver(subscription, body),
                timeout=self._delivery_timeout,
            )
        except PermanentDeliveryFailure as e:
            logger.info(
                "push_endpoint_gone",
                subscriber_id=subscription.subscriber_id,
                status_code=e.status_code,
            )
            return DeliveryOutcome.PERMANENT_FAILURE
        except TransientDeliveryFailure as e:
            logger.warning(
                "push_delivery_failed",
                subscriber_id=subscription.subscriber_id,
                status_code=e.status_code,
                error=e.reason,
            )
            return DeliveryOutcome.TRANSIENT_FAILURE
        except asyncio.TimeoutError:
            logger.warning(
                "push_delivery_timeout",
                subscriber_id=subscription.subscriber_id,
                timeout=self._delivery_timeout,
            )
            return DeliveryOutcome.TRANSIENT_FAILURE
        except Exception:
            logger.error(
                "push_delivery_error",
                subscriber_id=subscription.subscriber_id,
                exc_info=True,
            )
            return DeliveryOutcome.TRANSIENT_FAILURE
        return DeliveryOutcome.DELIVERED

    async def _prune(self, endpoints: list[str], commit: bool) -> int:
        if not endpoints:
            return 0
        if commit:
            return await self._registry.remove_subscriptions(endpoints)
        async with self._stage_lock:
            self._staged.update(endpoints)
        return 0

    async def broadcast(self, payload: Payload, *, commit: bool = True) -> DispatchReport:
        """Deliver ``payload`` to every current subscription.

        Args:
            payload: Notification variant to send.
            commit: Remove gone endpoints right away (True) or stage them
                for commit_pruning() (False).

        Returns:
            DispatchReport with per-outcome counts.
        """
        subscriptions = await self._registry.subscriptions()
        async with self._stage_lock:
            staged = set(self._staged)
        targets = [s for s in subscriptions if s.endpoint not in staged]

        report = DispatchReport(attempted=len(targets))
        if not targets:
            return report

        body = serialize(payload)
        outcomes = await asyncio.gather(*(self._deliver(s, body) for s in targets))

        for subscription, outcome in zip(targets, outcomes):
            if outcome is DeliveryOutcome.DELIVERED:
                report.delivered += 1
            elif outcome is DeliveryOutcome.TRANSIENT_FAILURE:
                report.transient_failures += 1
            else:
                report.gone_endpoints.append(subscription.endpoint)

        report.removed = await self._prune(report.gone_endpoints, commit)

        logger.info(
            "broadcast_complete",
            kind=payload.kind,
            delivered=report.delivered,
            attempted=report.attempted,
            transient_failures=report.transient_failures,
            gone=len(report.gone_endpoints),
        )
        return report

    async def send_to(
        self, subscription: Subscription, payload: Payload, *, commit: bool = True
    ) -> DeliveryOutcome:
        """Deliver ``payload`` to a single subscription.

        An endpoint already staged as gone in this cycle is not attempted
        again and reports PERMANENT_FAILURE.
        """
        async with self._stage_lock:
            already_gone = subscription.endpoint in self._staged
        if already_gone:
            logger.debug("push_endpoint_already_staged", subscriber_id=subscription.subscriber_id)
            return DeliveryOutcome.PERMANENT_FAILURE

        outcome = await self._deliver(subscription, serialize(payload))
        if outcome is DeliveryOutcome.PERMANENT_FAILURE:
            await self._prune([subscription.endpoint], commit)
        return outcome

    async def commit_pruning(self) -> int:
        """Remove every staged gone endpoint in one batch. Returns the count removed."""
        async with self._stage_lock:
            endpoints = sorted(self._staged)
            self._staged.clear()
        if not endpoints:
            return 0
        return await self._registry.remove_subscriptions(endpoints)
