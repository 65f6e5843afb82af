"""Engine orchestrator -- drives the refresh and alert cycles.

Two timer-driven cycles share one EngineContext:

  Refresh cycle (every ALERTS_REFRESH_INTERVAL, 60 s by default):
    1. FETCH: one RateSnapshot from the aggregator
    2. DERIVE: a rate per monitored pair
    3. APPEND: each rate to the shared history
    4. SCORE: an Analysis per pair with the current risk settings

  Alert cycle (every ALERTS_CHECK_INTERVAL, 300 s, first run after
  ALERTS_STARTUP_DELAY):
    1. FETCH + DERIVE as above; an offline/demo snapshot ends the cycle here
    2. APPEND each rate to the shared history
    3. EVALUATE volatility against the rate this cycle last evaluated, and
       price alerts, per pair concurrently
    4. PRUNE every endpoint found gone during the cycle, in one batch

Ticks fire on a fixed schedule regardless of how long a cycle takes. A
tick that arrives while the previous cycle of the same kind still runs is
skipped, never queued.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from structlog.contextvars import bound_contextvars

from fxsignal.exceptions import UnknownPairError
from fxsignal.logging import get_logger
from fxsignal.models import PricePoint
from fxsignal.rates.calculator import derive_all
from fxsignal.signals.models import SIGNAL_ORDER

if TYPE_CHECKING:
    from fxsignal.alerts.evaluator import AlertEvaluator, EvaluationReport
    from fxsignal.alerts.registry import SubscriptionRegistry
    from fxsignal.config import AppSettings, RiskSettings
    from fxsignal.data.database import EngineDatabase
    from fxsignal.data.store import EngineStore
    from fxsignal.journal.tracker import TradeJournal
    from fxsignal.market_data.history import HistoryStore
    from fxsignal.models import PairSpec, RateSnapshot
    from fxsignal.notify.dispatcher import NotificationDispatcher
    from fxsignal.rates.aggregator import RateAggregator
    from fxsignal.risk.profile import RiskProfile
    from fxsignal.signals.models import Analysis
    from fxsignal.signals.scorer import SignalScorer

logger = get_logger(__name__)


@dataclass
class EngineContext:
    """Every long-lived component, built once at startup and passed down."""

    settings: AppSettings
    pairs: tuple[PairSpec, ...]
    aggregator: RateAggregator
    history: HistoryStore
    scorer: SignalScorer
    risk_profile: RiskProfile
    registry: SubscriptionRegistry
    dispatcher: NotificationDispatcher
    evaluator: AlertEvaluator
    journal: TradeJournal
    database: EngineDatabase | None = None
    store: EngineStore | None = None

    def find_pair(self, pair_id: str) -> PairSpec | None:
        for pair in self.pairs:
            if pair.id == pair_id:
                return pair
        return None

    def require_pair(self, pair_id: str) -> PairSpec:
        """Like find_pair, but raises UnknownPairError for an unmonitored id."""
        pair = self.find_pair(pair_id)
        if pair is None:
            raise UnknownPairError(f"unknown pair: {pair_id}")
        return pair


@dataclass
class CycleState:
    """Bookkeeping for one kind of cycle."""

    name: str
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    runs: int = 0
    skipped: int = 0
    last_completed_at: float | None = None


@asynccontextmanager
async def _cycle_context(state: CycleState):
    """Bind the cycle name and run number to every log line inside the cycle."""
    with bound_contextvars(cycle=state.name, run=state.runs + 1):
        yield


class Orchestrator:
    """Runs the refresh and alert cycles and exposes the latest results.

    Args:
        context: Fully wired engine components.
    """

    def __init__(self, context: EngineContext) -> None:
        self._ctx = context
        self._running = False
        self._started_at: float | None = None
        self._refresh = CycleState("refresh")
        self._alert = CycleState("alert")
        self._inflight: set[asyncio.Task] = set()
        self._loop_tasks: list[asyncio.Task] = []

        self._analyses: dict[str, Analysis] = {}
        self._rates: dict[str, float] = {}
        # rate per pair at the last alert evaluation; only the alert cycle writes it
        self._alert_baseline: dict[str, float] = {}
        self._last_snapshot: RateSnapshot | None = None
        self._last_error: str | None = None

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def start(self) -> None:
        """Run both timer loops until stop() is called or the task is cancelled."""
        alerts = self._ctx.settings.alerts
        logger.info(
            "orchestrator_starting",
            pairs=[p.id for p in self._ctx.pairs],
            refresh_interval=alerts.refresh_interval,
            check_interval=alerts.check_interval,
        )
        self._running = True
        self._started_at = time.monotonic()
        self._loop_tasks = [
            asyncio.create_task(
                self._tick_loop(self._refresh, self.run_refresh_cycle, alerts.refresh_interval, 0.0)
            ),
            asyncio.create_task(
                self._tick_loop(
                    self._alert, self.run_alert_cycle, alerts.check_interval, alerts.startup_delay
                )
            ),
        ]
        try:
            await asyncio.gather(*self._loop_tasks)
        except asyncio.CancelledError:
            pass
        finally:
            await self._cancel_all()
            self._running = False
            logger.info("orchestrator_stopped")

    async def stop(self) -> None:
        """Stop both loops and cancel any cycle still in flight."""
        logger.info("orchestrator_stopping")
        self._running = False
        await self._cancel_all()

    async def _cancel_all(self) -> None:
        tasks = [t for t in (*self._loop_tasks, *self._inflight) if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_tasks = []

    async def _tick_loop(self, state: CycleState, cycle, interval: float, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        while self._running:
            task = asyncio.create_task(cycle())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            await asyncio.sleep(interval)

    @property
    def is_running(self) -> bool:
        return self._running

    # ──────────────────────────────────────────────
    # Shared steps
    # ──────────────────────────────────────────────

    async def _fetch_pair_rates(self) -> tuple[RateSnapshot, dict[str, float]]:
        snapshot = await self._ctx.aggregator.fetch()
        rates = derive_all(self._ctx.pairs, snapshot)
        self._last_snapshot = snapshot
        missing = [p.id for p in self._ctx.pairs if p.id not in rates]
        if missing:
            logger.warning("pair_rates_unavailable", pairs=missing, source=snapshot.source)
        return snapshot, rates

    def _try_begin(self, state: CycleState) -> bool:
        if state.lock.locked():
            state.skipped += 1
            logger.info("cycle_skipped", cycle=state.name, skipped_total=state.skipped)
            return False
        return True

    # ──────────────────────────────────────────────
    # Refresh cycle
    # ──────────────────────────────────────────────

    async def run_refresh_cycle(self) -> bool:
        """Fetch, append and score every pair. Returns False when skipped."""
        if not self._try_begin(self._refresh):
            return False
        async with self._refresh.lock, _cycle_context(self._refresh):
            try:
                await self._refresh_cycle()
                self._last_error = None
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = str(e)
                logger.error("refresh_cycle_error", error=str(e), exc_info=True)
            finally:
                self._refresh.runs += 1
                self._refresh.last_completed_at = time.time()
        return True

    async def _refresh_cycle(self) -> None:
        snapshot, rates = await self._fetch_pair_rates()
        risk_settings = self._ctx.risk_profile.snapshot()

        async def _refresh_pair(pair: PairSpec, rate: float) -> Analysis:
            await self._ctx.history.append(pair.id, PricePoint(rate, snapshot.captured_at))
            history = await self._ctx.history.read(pair.id)
            return self._ctx.scorer.score(history, pair, risk_settings)

        pairs = [p for p in self._ctx.pairs if p.id in rates]
        analyses = await asyncio.gather(*(_refresh_pair(p, rates[p.id]) for p in pairs))

        self._rates.update(rates)
        self._analyses.update({a.pair_id: a for a in analyses})

        logger.info(
            "refresh_cycle_complete",
            source=snapshot.source,
            live=snapshot.is_live,
            pairs=len(analyses),
            signals={a.pair_id: a.signal.value for a in analyses},
        )

    # ──────────────────────────────────────────────
    # Alert cycle
    # ──────────────────────────────────────────────

    async def run_alert_cycle(self) -> bool:
        """Fetch, append and evaluate alerts for every pair. Returns False when skipped."""
        if not self._try_begin(self._alert):
            return False
        async with self._alert.lock, _cycle_context(self._alert):
            try:
                await self._alert_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("alert_cycle_error", error=str(e), exc_info=True)
            finally:
                self._alert.runs += 1
                self._alert.last_completed_at = time.time()
        return True

    async def _alert_cycle(self) -> None:
        snapshot, rates = await self._fetch_pair_rates()
        if not snapshot.is_live:
            logger.warning("alert_cycle_skipped_offline", source=snapshot.source)
            return

        async def _evaluate_pair(pair: PairSpec, rate: float) -> EvaluationReport:
            await self._ctx.history.append(pair.id, PricePoint(rate, snapshot.captured_at))
            report = await self._ctx.evaluator.evaluate(
                pair, rate, self._alert_baseline.get(pair.id), commit=False
            )
            self._alert_baseline[pair.id] = rate
            return report

        pairs = [p for p in self._ctx.pairs if p.id in rates]
        try:
            reports = await asyncio.gather(
                *(_evaluate_pair(p, rates[p.id]) for p in pairs),
                return_exceptions=True,
            )
        finally:
            removed = await self._ctx.dispatcher.commit_pruning()

        failed = 0
        for pair, report in zip(pairs, reports):
            if isinstance(report, BaseException):
                failed += 1
                logger.error(
                    "pair_evaluation_failed",
                    pair_id=pair.id,
                    error=str(report),
                    exc_info=report,
                )

        self._rates.update(rates)
        logger.info(
            "alert_cycle_complete",
            source=snapshot.source,
            pairs=len(pairs),
            failed=failed,
            volatility_sent=sum(
                1 for r in reports if not isinstance(r, BaseException) and r.volatility_sent
            ),
            alerts_fired=sum(
                len(r.fired_alert_ids) for r in reports if not isinstance(r, BaseException)
            ),
            pruned=removed,
        )

    # ──────────────────────────────────────────────
    # Risk settings
    # ──────────────────────────────────────────────

    def apply_risk_settings(self, settings: RiskSettings) -> None:
        """Recompute the risk plan of every current analysis."""
        for analysis in self._analyses.values():
            self._ctx.scorer.resize(analysis, settings)
        logger.info("analyses_resized", pairs=len(self._analyses))

    # ──────────────────────────────────────────────
    # Read side
    # ──────────────────────────────────────────────

    def get_analysis(self, pair_id: str) -> Analysis | None:
        return self._analyses.get(pair_id)

    def get_rate(self, pair_id: str) -> float | None:
        return self._rates.get(pair_id)

    def ranked_pairs(self) -> list[PairSpec]:
        """Monitored pairs, strongest buy first. Pairs without analysis go last."""

        def _rank(pair: PairSpec) -> int:
            analysis = self._analyses.get(pair.id)
            return SIGNAL_ORDER[analysis.signal] if analysis else len(SIGNAL_ORDER)

        return sorted(self._ctx.pairs, key=_rank)

    @property
    def last_snapshot(self) -> RateSnapshot | None:
        return self._last_snapshot

    async def get_status(self) -> dict:
        """Service status for the /status endpoint.

        has_data is False until at least one analysis exists; last_error is
        only surfaced in that state.
        """
        has_data = bool(self._analyses)
        snapshot = self._last_snapshot
        return {
            "status": "running" if self._running else "stopped",
            "subscribers": await self._ctx.registry.subscriber_count(),
            "alerts": len(await self._ctx.registry.untriggered_alerts()),
            "last_price_check": self._alert.last_completed_at,
            "last_refresh": self._refresh.last_completed_at,
            "monitored_pairs": len(self._rates),
            "uptime": time.monotonic() - self._started_at if self._started_at else 0.0,
            "source": snapshot.source if snapshot else None,
            "live": snapshot.is_live if snapshot else False,
            "has_data": has_data,
            "last_error": None if has_data else self._last_error,
            "cycles": {
                "refresh": {"runs": self._refresh.runs, "skipped": self._refresh.skipped},
                "alert": {"runs": self._alert.runs, "skipped": self._alert.skipped},
            },
        }
