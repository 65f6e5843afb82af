"""Push delivery transports.

A transport delivers one serialized payload to one subscription and reports
failure by raising:

- PermanentDeliveryFailure: the push service says the endpoint is gone
  (HTTP 404 or 410). The dispatcher removes the subscription.
- TransientDeliveryFailure: anything else (timeout, 5xx, network error).
  The subscription stays; the next cycle is the retry.
"""

import asyncio
from abc import ABC, abstractmethod

from pywebpush import WebPushException, webpush

from fxsignal.config import PushSettings
from fxsignal.exceptions import PermanentDeliveryFailure, TransientDeliveryFailure
from fxsignal.logging import get_logger
from fxsignal.models import Subscription

logger = get_logger(__name__)

#: Push service status codes meaning "this endpoint no longer exists".
GONE_STATUS_CODES = frozenset({404, 410})


class PushTransport(ABC):
    """Abstract base class for push delivery."""

    @abstractmethod
    async def deliver(self, subscription: Subscription, payload: str) -> None:
        """Deliver ``payload`` to ``subscription``.

        Raises:
            PermanentDeliveryFailure: endpoint permanently gone.
            TransientDeliveryFailure: any other failure.
        """
        ...


class WebPushTransport(PushTransport):
    """Web Push (RFC 8030) with VAPID authentication via pywebpush.

    pywebpush is blocking, so each send runs in a worker thread and is
    bounded by both the HTTP timeout and an outer asyncio timeout.
    """

    def __init__(self, settings: PushSettings) -> None:
        self._settings = settings

    def _send_blocking(self, subscription: Subscription, payload: str) -> None:
        webpush(
            subscription_info=subscription.to_webpush_info(),
            data=payload,
            vapid_private_key=self._settings.vapid_private_key.get_secret_value(),
            vapid_claims={"sub": self._settings.vapid_subject},
            ttl=self._settings.ttl_seconds,
            timeout=self._settings.delivery_timeout_seconds,
        )

    async def deliver(self, subscription: Subscription, payload: str) -> None:
        timeout = self._settings.delivery_timeout_seconds
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_blocking, subscription, payload),
                timeout=timeout + 1.0,
            )
        except WebPushException as e:
            status = getattr(e.response, "status_code", None)
            if status in GONE_STATUS_CODES:
                raise PermanentDeliveryFailure(
                    subscription.endpoint, "endpoint gone", status_code=status
                ) from e
            raise TransientDeliveryFailure(
                subscription.endpoint, f"push service error: {e}", status_code=status
            ) from e
        except asyncio.TimeoutError as e:
            raise TransientDeliveryFailure(
                subscription.endpoint, f"timed out after {timeout}s"
            ) from e
        except OSError as e:
            # requests' exceptions derive from OSError
            raise TransientDeliveryFailure(
                subscription.endpoint, f"network error: {e}"
            ) from e
