"""Custom exceptions for the FX signal and alert engine.

All exceptions live here to avoid circular imports between the rates,
notify, alerts and data packages.
"""


class FxSignalError(Exception):
    """Base exception for all engine errors."""


class DataSourceFailure(FxSignalError):
    """Raised when a rate provider call fails or returns unusable data.

    Never escapes RateAggregator.fetch(); the aggregator turns it into a
    failed ProviderResult and moves on to the next provider.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class DeliveryFailure(FxSignalError):
    """Raised by a push transport when a notification could not be delivered."""

    def __init__(self, endpoint: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(f"{reason} (status={status_code})")
        self.endpoint = endpoint
        self.reason = reason
        self.status_code = status_code


class PermanentDeliveryFailure(DeliveryFailure):
    """The endpoint is gone for good (HTTP 404/410). The subscription must be removed."""


class TransientDeliveryFailure(DeliveryFailure):
    """Timeout, 5xx or network error. Left for the next evaluation cycle."""


class ConfigurationError(FxSignalError):
    """Raised when persisted settings or state cannot be parsed."""


class UnknownPairError(FxSignalError):
    """Raised when a request references a pair id that is not monitored."""


class SubscriptionNotFound(FxSignalError):
    """Raised when a subscriber id does not match any registered subscription."""


class TradeNotFound(FxSignalError):
    """Raised when a journal operation references an unknown trade id."""
