"""Per-pair alert evaluation for one new rate.

Two independent checks run for every new rate:

1. Volatility: the percentage change from the previous rate. At or above
   the threshold (in either direction) a VolatilityPayload is broadcast to
   every subscriber. Skipped when nobody is subscribed or when the pair has
   no previous rate yet.
2. User price alerts: every untriggered alert for the pair whose condition
   holds is marked triggered (once, atomically, in the registry) and sent to
   its owner. An alert whose owner has since unsubscribed stays triggered
   and is skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fxsignal.logging import get_logger
from fxsignal.notify.dispatcher import DeliveryOutcome
from fxsignal.notify.payloads import DEFAULT_ICON, UserAlertPayload, VolatilityPayload

if TYPE_CHECKING:
    from fxsignal.alerts.registry import SubscriptionRegistry
    from fxsignal.models import PairSpec
    from fxsignal.notify.dispatcher import NotificationDispatcher

logger = get_logger(__name__)


def percent_change(new_rate: float, previous_rate: float) -> float:
    return (new_rate - previous_rate) / previous_rate * 100


@dataclass
class EvaluationReport:
    """What one evaluation did for one pair."""

    pair_id: str
    change_pct: float | None = None
    volatility_sent: bool = False
    fired_alert_ids: list[str] = field(default_factory=list)
    delivered_alerts: int = 0
    dangling_alerts: int = 0


class AlertEvaluator:
    """Evaluates volatility and user price alerts for a pair.

    Args:
        registry: Source of subscriptions and alerts.
        dispatcher: Delivers the resulting notifications.
        threshold_pct: Absolute percentage move that counts as volatile.
        icon: Icon URL placed in every payload.
        badge: Optional badge URL for volatility payloads.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        dispatcher: NotificationDispatcher,
        threshold_pct: float = 0.5,
        icon: str = DEFAULT_ICON,
        badge: str | None = None,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._threshold_pct = threshold_pct
        self._icon = icon
        self._badge = badge

    @property
    def threshold_pct(self) -> float:
        return self._threshold_pct

    async def evaluate(
        self,
        pair: PairSpec,
        new_rate: float,
        previous_rate: float | None,
        *,
        commit: bool = True,
    ) -> EvaluationReport:
        """Run both checks for ``pair`` at ``new_rate``.

        Args:
            pair: The pair the rate belongs to.
            new_rate: Freshly derived rate.
            previous_rate: Rate seen for ``pair`` at the previous alert
                evaluation, or None on the first one.
            commit: Forwarded to the dispatcher; False stages endpoint
                pruning until the caller commits.
        """
        report = EvaluationReport(pair_id=pair.id)
        await self._check_volatility(pair, new_rate, previous_rate, report, commit)
        await self._check_price_alerts(pair, new_rate, report, commit)
        return report

    async def _check_volatility(
        self,
        pair: PairSpec,
        new_rate: float,
        previous_rate: float | None,
        report: EvaluationReport,
        commit: bool,
    ) -> None:
        if previous_rate is None or previous_rate <= 0:
            return
        if await self._registry.subscriber_count() == 0:
            return

        change = percent_change(new_rate, previous_rate)
        report.change_pct = change
        if abs(change) < self._threshold_pct:
            return

        logger.info(
            "volatility_detected",
            pair_id=pair.id,
            change_pct=round(change, 4),
            rate=new_rate,
        )
        payload = VolatilityPayload(
            pair_id=pair.id,
            pair_name=pair.name,
            change_pct=round(change, 2),
            rate=new_rate,
            icon=self._icon,
            badge=self._badge,
        )
        await self._dispatcher.broadcast(payload, commit=commit)
        report.volatility_sent = True

    async def _check_price_alerts(
        self,
        pair: PairSpec,
        new_rate: float,
        report: EvaluationReport,
        commit: bool,
    ) -> None:
        fired = await self._registry.trigger_matching(pair.id, new_rate)
        for alert in fired:
            report.fired_alert_ids.append(alert.id)
            logger.info(
                "price_alert_triggered",
                alert_id=alert.id,
                pair_id=pair.id,
                direction=alert.direction.value,
                target_price=alert.target_price,
                rate=new_rate,
            )
            owner = await self._registry.get_by_subscriber_id(alert.subscriber_id)
            if owner is None:
                report.dangling_alerts += 1
                logger.debug(
                    "price_alert_owner_missing",
                    alert_id=alert.id,
                    subscriber_id=alert.subscriber_id,
                )
                continue

            payload = UserAlertPayload(
                pair_id=pair.id,
                pair_name=pair.name,
                alert_id=alert.id,
                target_price=alert.target_price,
                current_rate=new_rate,
                icon=self._icon,
            )
            outcome = await self._dispatcher.send_to(owner, payload, commit=commit)
            if outcome is DeliveryOutcome.DELIVERED:
                report.delivered_alerts += 1
