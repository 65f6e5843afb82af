"""Push notification layer -- payload variants, transports and the dispatcher."""

from fxsignal.notify.dispatcher import DeliveryOutcome, DispatchReport, NotificationDispatcher
from fxsignal.notify.payloads import (
    Payload,
    TestPayload,
    UserAlertPayload,
    VolatilityPayload,
    serialize,
)
from fxsignal.notify.transport import PushTransport, WebPushTransport

__all__ = [
    "DeliveryOutcome",
    "DispatchReport",
    "NotificationDispatcher",
    "Payload",
    "PushTransport",
    "TestPayload",
    "UserAlertPayload",
    "VolatilityPayload",
    "WebPushTransport",
    "serialize",
]
