"""Subscriptions, price alerts and their evaluation against new rates."""

from fxsignal.alerts.evaluator import AlertEvaluator, EvaluationReport, percent_change
from fxsignal.alerts.registry import SubscriptionRegistry, generate_subscriber_id

__all__ = [
    "AlertEvaluator",
    "EvaluationReport",
    "SubscriptionRegistry",
    "generate_subscriber_id",
    "percent_change",
]
