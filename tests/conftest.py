"""Shared test fixtures for the FX signal engine."""

import time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from fxsignal.alerts.evaluator import AlertEvaluator
from fxsignal.alerts.registry import SubscriptionRegistry
from fxsignal.config import (
    AlertSettings,
    AppSettings,
    PushSettings,
    RatesSettings,
    RiskSettings,
    StorageSettings,
)
from fxsignal.exceptions import PermanentDeliveryFailure, TransientDeliveryFailure
from fxsignal.journal.tracker import TradeJournal
from fxsignal.market_data.history import HistoryStore
from fxsignal.models import DEFAULT_PAIRS, PairSpec, PricePoint, RateSnapshot, Subscription
from fxsignal.notify.dispatcher import NotificationDispatcher
from fxsignal.notify.transport import PushTransport
from fxsignal.orchestrator import EngineContext, Orchestrator
from fxsignal.rates.aggregator import RateAggregator
from fxsignal.risk.profile import RiskProfile
from fxsignal.risk.sizer import RiskSizer
from fxsignal.signals.scorer import SignalScorer


class RecordingTransport(PushTransport):
    """In-memory transport that records deliveries and fails on demand.

    Endpoints listed in ``gone`` raise PermanentDeliveryFailure (410);
    endpoints listed in ``flaky`` raise TransientDeliveryFailure (503).
    """

    def __init__(self, gone: set[str] | None = None, flaky: set[str] | None = None) -> None:
        self.gone = gone or set()
        self.flaky = flaky or set()
        self.delivered: list[tuple[str, str]] = []
        self.attempts: list[str] = []

    async def deliver(self, subscription: Subscription, payload: str) -> None:
        self.attempts.append(subscription.endpoint)
        if subscription.endpoint in self.gone:
            raise PermanentDeliveryFailure(subscription.endpoint, "Gone", status_code=410)
        if subscription.endpoint in self.flaky:
            raise TransientDeliveryFailure(
                subscription.endpoint, "Service Unavailable", status_code=503
            )
        self.delivered.append((subscription.endpoint, payload))


@pytest.fixture
def app_settings() -> AppSettings:
    """AppSettings with test defaults (in-memory database, dummy VAPID keys)."""
    return AppSettings(
        log_level="DEBUG",
        rates=RatesSettings(),
        alerts=AlertSettings(refresh_interval=60, check_interval=300, startup_delay=0),
        risk=RiskSettings(),
        push=PushSettings(
            vapid_public_key="test-public-key",
            vapid_private_key="test-private-key",  # type: ignore[arg-type]
        ),
        storage=StorageSettings(db_path=":memory:"),
    )


@pytest.fixture
def risk_settings() -> RiskSettings:
    """Default account: 100,000 capital, 2% risk, 10x leverage, standard lot."""
    return RiskSettings(
        capital=Decimal("100000"),
        risk_percent=Decimal("2"),
        leverage=10,
        lot_size=Decimal("100000"),
    )


@pytest.fixture
def usd_jpy() -> PairSpec:
    return DEFAULT_PAIRS[0]


@pytest.fixture
def eur_usd() -> PairSpec:
    return next(p for p in DEFAULT_PAIRS if p.id == "EUR_USD")


def _make_points(rates: list[float], start: float | None = None) -> list[PricePoint]:
    t0 = start if start is not None else time.time() - 60 * len(rates)
    return [PricePoint(rate=r, timestamp=t0 + 60 * i) for i, r in enumerate(rates)]


@pytest.fixture
def make_points():
    """Factory: list of rates -> PricePoints one minute apart, oldest first."""
    return _make_points


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def registry() -> SubscriptionRegistry:
    """Registry without persistence."""
    return SubscriptionRegistry()


@pytest.fixture
def dispatcher(
    transport: RecordingTransport, registry: SubscriptionRegistry
) -> NotificationDispatcher:
    return NotificationDispatcher(transport, registry, delivery_timeout=1.0)


@pytest.fixture
def keys() -> dict[str, str]:
    """Push subscription keys in the shape browsers send."""
    return {
        "p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
        "auth": "tBHItJI5svbpez7KI4CCXg",
    }


def _jpy_snapshot(
    usd_jpy: float = 150.0,
    eur_jpy: float = 163.0,
    gbp_jpy: float = 190.0,
    aud_jpy: float = 98.0,
    source: str = "frankfurter",
) -> RateSnapshot:
    """JPY-referenced snapshot whose yen crosses equal the given quotes."""
    return RateSnapshot(
        rates={
            "JPY": 1.0,
            "USD": 1 / usd_jpy,
            "EUR": 1 / eur_jpy,
            "GBP": 1 / gbp_jpy,
            "AUD": 1 / aud_jpy,
        },
        source=source,
        reference="JPY",
    )


@pytest.fixture
def make_snapshot():
    """Factory: yen quotes -> RateSnapshot referenced to JPY."""
    return _jpy_snapshot


@pytest.fixture
def aggregator() -> MagicMock:
    """Aggregator whose fetch() returns a fixed live snapshot."""
    mock = MagicMock(spec=RateAggregator)
    mock.fetch = AsyncMock(return_value=_jpy_snapshot())
    return mock


@pytest.fixture
def engine_context(
    app_settings: AppSettings,
    aggregator: MagicMock,
    registry: SubscriptionRegistry,
    dispatcher: NotificationDispatcher,
) -> EngineContext:
    """Fully wired context without persistence or network access."""
    return EngineContext(
        settings=app_settings,
        pairs=DEFAULT_PAIRS,
        aggregator=aggregator,
        history=HistoryStore(app_settings.rates.history_cap),
        scorer=SignalScorer(RiskSizer()),
        risk_profile=RiskProfile(app_settings.risk),
        registry=registry,
        dispatcher=dispatcher,
        evaluator=AlertEvaluator(
            registry,
            dispatcher,
            threshold_pct=app_settings.alerts.volatility_threshold_pct,
        ),
        journal=TradeJournal(app_settings.risk.lot_size),
    )


@pytest.fixture
def orchestrator(engine_context: EngineContext) -> Orchestrator:
    return Orchestrator(engine_context)
