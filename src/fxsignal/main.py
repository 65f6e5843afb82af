"""Entry point for the FX signal and alert engine.

Wires all components into an EngineContext, optionally serves the JSON API,
and starts the orchestrator. When the server is enabled (default), the
engine and the API share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_context):
1. AppSettings (configuration)
2. Logging setup
3. EngineDatabase + EngineStore (SQLite persistence)
4. RateAggregator (ordered providers with offline fallback)
5. HistoryStore (shared bounded price history)
6. RiskSizer + SignalScorer
7. RiskProfile (user risk settings)
8. SubscriptionRegistry (subscriptions and price alerts)
9. WebPushTransport + NotificationDispatcher
10. AlertEvaluator
11. TradeJournal
12. Orchestrator (refresh and alert cycles)
"""

import asyncio
import signal
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from fxsignal.alerts.evaluator import AlertEvaluator
from fxsignal.alerts.registry import SubscriptionRegistry
from fxsignal.config import AppSettings
from fxsignal.data.database import EngineDatabase
from fxsignal.data.store import EngineStore
from fxsignal.journal.tracker import TradeJournal
from fxsignal.logging import get_logger, setup_logging
from fxsignal.market_data.history import HistoryStore
from fxsignal.models import DEFAULT_PAIRS
from fxsignal.notify.dispatcher import NotificationDispatcher
from fxsignal.notify.transport import WebPushTransport
from fxsignal.orchestrator import EngineContext, Orchestrator
from fxsignal.rates.aggregator import RateAggregator
from fxsignal.risk.profile import RiskProfile
from fxsignal.risk.sizer import RiskSizer
from fxsignal.signals.scorer import SignalScorer


def _build_context(settings: AppSettings) -> EngineContext:
    """Build every engine component from settings.

    Note: Does NOT open the database, load persisted state or open the HTTP
    session -- that happens in _startup().

    Args:
        settings: Application-wide settings.

    Returns:
        EngineContext holding all components.
    """
    logger = get_logger("fxsignal.main")

    if not settings.push.vapid_public_key or not settings.push.vapid_private_key.get_secret_value():
        logger.warning(
            "no_vapid_keys_configured",
            note="Analysis runs normally. Push deliveries will fail until "
            "PUSH_VAPID_PUBLIC_KEY and PUSH_VAPID_PRIVATE_KEY are set.",
        )

    # 3. Persistence
    database = EngineDatabase(settings.storage.db_path)
    store = EngineStore(database)

    # 4-5. Market data
    aggregator = RateAggregator(settings.rates)
    history = HistoryStore(settings.rates.history_cap)

    # 6. Scoring
    scorer = SignalScorer(RiskSizer())

    # 7. Risk settings
    risk_profile = RiskProfile(settings.risk, store)

    # 8. Registry
    registry = SubscriptionRegistry(store)

    # 9. Notifications
    transport = WebPushTransport(settings.push)
    dispatcher = NotificationDispatcher(
        transport, registry, delivery_timeout=settings.push.delivery_timeout_seconds
    )

    # 10. Alerts
    evaluator = AlertEvaluator(
        registry,
        dispatcher,
        threshold_pct=settings.alerts.volatility_threshold_pct,
        icon=settings.push.icon,
        badge=settings.push.badge,
    )

    # 11. Journal
    journal = TradeJournal(settings.risk.lot_size, store)

    return EngineContext(
        settings=settings,
        pairs=DEFAULT_PAIRS,
        aggregator=aggregator,
        history=history,
        scorer=scorer,
        risk_profile=risk_profile,
        registry=registry,
        dispatcher=dispatcher,
        evaluator=evaluator,
        journal=journal,
        database=database,
        store=store,
    )


async def _startup(context: EngineContext) -> None:
    """Open resources and restore persisted state."""
    if context.database is not None:
        await context.database.connect()
    await context.registry.load()
    await context.journal.load()
    await context.risk_profile.load()
    await context.aggregator.connect()


async def _shutdown(context: EngineContext) -> None:
    await context.aggregator.close()
    if context.database is not None:
        await context.database.close()


def _setup_signal_handlers(orchestrator: Orchestrator) -> None:
    """Register SIGINT/SIGTERM for graceful stop.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("fxsignal.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(orchestrator.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage engine lifecycle within the FastAPI application.

    On startup: opens the database, restores state, starts the orchestrator
    as a background task.

    On shutdown: stops the orchestrator, cancels its task and releases
    the HTTP session and database.
    """
    logger = get_logger("fxsignal.main")
    context: EngineContext = app.state.context
    orchestrator: Orchestrator = app.state.orchestrator

    await _startup(context)

    engine_task = asyncio.create_task(orchestrator.start())
    logger.info("lifespan_started", pairs=len(context.pairs))

    yield

    await orchestrator.stop()
    engine_task.cancel()
    try:
        await engine_task
    except asyncio.CancelledError:
        pass

    await _shutdown(context)
    logger.info("fx_signal_engine_stopped")


async def run() -> None:
    """Run the engine.

    When the server is enabled (SERVER_ENABLED=true, the default) the JSON
    API and the engine run in one event loop under uvicorn, with the
    lifespan managing startup and shutdown. Otherwise the engine runs
    headless.
    """
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("fxsignal.main")

    # 3-12. Build all components
    context = _build_context(settings)
    orchestrator = Orchestrator(context)

    if settings.server.enabled:
        from fxsignal.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.context = context
        app.state.orchestrator = orchestrator

        logger.info(
            "starting_with_server",
            host=settings.server.host,
            port=settings.server.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.server.host,
            port=settings.server.port,
            log_config=None,
            access_log=False,
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        _setup_signal_handlers(orchestrator)

        logger.info(
            "starting_without_server",
            pairs=len(context.pairs),
            constrained=settings.rates.constrained,
        )

        try:
            await _startup(context)
            await orchestrator.start()
        finally:
            await _shutdown(context)
            logger.info("fx_signal_engine_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
