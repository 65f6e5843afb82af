"""Ordered multi-provider rate acquisition with a deterministic last resort.

Providers are tried one at a time in priority order. Each attempt is bounded
by the configured timeout and produces an explicit ProviderResult. The first
successful attempt wins; if every attempt fails, a demo snapshot built from a
fixed table is returned, tagged with OFFLINE_SOURCE so consumers can flag the
data as non-live.

Attempts are sequential on purpose: one outbound call at a time keeps the
free-tier rate limits of the public APIs intact.
"""

import time
from dataclasses import dataclass, field

import aiohttp

from fxsignal.config import RatesSettings
from fxsignal.exceptions import DataSourceFailure
from fxsignal.logging import get_logger
from fxsignal.models import OFFLINE_SOURCE, RateSnapshot
from fxsignal.rates.providers import (
    ExchangeRateApiProvider,
    ExchangeRateHostProvider,
    FrankfurterProvider,
    RateProvider,
    fallback_rates,
)

logger = get_logger(__name__)


@dataclass
class ProviderResult:
    """Outcome of a single provider attempt."""

    provider: str
    ok: bool
    rates: dict[str, float] = field(default_factory=dict)
    error: str = ""
    elapsed: float = 0.0


def build_default_providers(settings: RatesSettings) -> list[RateProvider]:
    """Providers in priority order: Frankfurter, ExchangeRate.host, ExchangeRate-API."""
    return [
        FrankfurterProvider(settings.frankfurter_url),
        ExchangeRateHostProvider(settings.exchangerate_host_url),
        ExchangeRateApiProvider(settings.exchangerate_api_url),
    ]


class RateAggregator:
    """Fetches one RateSnapshot per call from the first provider that works.

    Owns an aiohttp session unless one is injected (tests). Call connect()
    before fetch() and close() on shutdown.

    Args:
        settings: Rates settings (reference currency, attempt timeout).
        providers: Ordered providers. Defaults to build_default_providers().
        session: Optional pre-built aiohttp session.
    """

    def __init__(
        self,
        settings: RatesSettings,
        providers: list[RateProvider] | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._providers = providers if providers is not None else build_default_providers(settings)
        self._session = session
        self._owns_session = session is None
        self._last_results: list[ProviderResult] = []

    @property
    def reference(self) -> str:
        return self._settings.reference_currency.upper()

    @property
    def last_results(self) -> list[ProviderResult]:
        """Per-provider outcomes of the most recent fetch()."""
        return list(self._last_results)

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _attempt(self, provider: RateProvider) -> ProviderResult:
        start = time.monotonic()
        try:
            rates = await provider.fetch_rates(
                self._session, self.reference, self._settings.attempt_timeout
            )
        except DataSourceFailure as e:
            return ProviderResult(
                provider=provider.name,
                ok=False,
                error=e.reason,
                elapsed=time.monotonic() - start,
            )
        return ProviderResult(
            provider=provider.name,
            ok=True,
            rates=rates,
            elapsed=time.monotonic() - start,
        )

    async def fetch(self) -> RateSnapshot:
        """Return the first valid snapshot, or the offline/demo snapshot.

        Never raises for provider failures.
        """
        if self._session is None:
            await self.connect()

        results: list[ProviderResult] = []
        for provider in self._providers:
            result = await self._attempt(provider)
            results.append(result)
            if result.ok:
                self._last_results = results
                logger.info(
                    "rates_fetched",
                    source=result.provider,
                    currencies=len(result.rates),
                    elapsed=round(result.elapsed, 3),
                )
                return RateSnapshot(
                    rates=result.rates,
                    source=result.provider,
                    reference=self.reference,
                )
            logger.warning(
                "rate_provider_failed",
                source=result.provider,
                error=result.error,
            )

        self._last_results = results
        rates, reference = fallback_rates(self.reference)
        logger.warning(
            "rates_fallback_used",
            source=OFFLINE_SOURCE,
            attempts=len(results),
            reference=reference,
        )
        return RateSnapshot(rates=rates, source=OFFLINE_SOURCE, reference=reference)
