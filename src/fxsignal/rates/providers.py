"""Rate source adapters for public FX snapshot APIs.

Every provider normalizes its response to "units of currency per 1 unit of
the reference currency", which is what all three supported APIs return
when asked for the reference as the base:

    Frankfurter         GET {url}?from=JPY          -> {"rates": {...}}
    ExchangeRate.host   GET {url}?base=JPY          -> {"rates": {...}}
    ExchangeRate-API    GET {url}/JPY               -> {"rates": {...}}

A provider raises DataSourceFailure for any HTTP error, timeout, malformed
body or empty rate set. It never retries; the aggregator decides what to
try next.
"""

import asyncio
import math
from abc import ABC, abstractmethod

import aiohttp

from fxsignal.exceptions import DataSourceFailure
from fxsignal.logging import get_logger

logger = get_logger(__name__)


def parse_rates(source: str, body: object) -> dict[str, float]:
    """Extract a clean currency -> rate mapping from a decoded JSON body.

    Non-numeric, non-finite and non-positive entries are dropped.

    Raises:
        DataSourceFailure: body is not an object with a non-empty "rates" object.
    """
    if not isinstance(body, dict):
        raise DataSourceFailure(source, "response body is not an object")

    raw_rates = body.get("rates")
    if not isinstance(raw_rates, dict):
        raise DataSourceFailure(source, "response has no rates object")

    rates: dict[str, float] = {}
    for code, raw in raw_rates.items():
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            continue
        try:
            value = float(raw)
        except ValueError:
            continue
        if math.isfinite(value) and value > 0:
            rates[str(code).upper()] = value

    if not rates:
        raise DataSourceFailure(source, "empty rate set")
    return rates


class RateProvider(ABC):
    """Abstract base class for a single snapshot provider."""

    name: str = "provider"

    @abstractmethod
    def build_request(self, reference: str) -> tuple[str, dict[str, str]]:
        """Return (url, query params) for a snapshot based on ``reference``."""
        ...

    async def fetch_rates(
        self,
        session: aiohttp.ClientSession,
        reference: str,
        timeout: float,
    ) -> dict[str, float]:
        """Fetch and normalize one snapshot.

        Args:
            session: Shared aiohttp session owned by the aggregator.
            reference: Reference currency code (e.g. "JPY").
            timeout: Total seconds allowed for this attempt.

        Returns:
            Mapping currency code -> units per 1 reference unit.

        Raises:
            DataSourceFailure: on any failure of this attempt.
        """
        url, params = self.build_request(reference)
        try:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if response.status != 200:
                    raise DataSourceFailure(self.name, f"HTTP {response.status}")
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise DataSourceFailure(self.name, f"malformed JSON: {e}") from e
        except asyncio.TimeoutError as e:
            raise DataSourceFailure(self.name, f"timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise DataSourceFailure(self.name, f"client error: {e}") from e

        rates = parse_rates(self.name, body)
        rates.setdefault(reference.upper(), 1.0)
        return rates


class FrankfurterProvider(RateProvider):
    """ECB reference rates via api.frankfurter.app."""

    name = "frankfurter"

    def __init__(self, url: str) -> None:
        self._url = url

    def build_request(self, reference: str) -> tuple[str, dict[str, str]]:
        return self._url, {"from": reference}


class ExchangeRateHostProvider(RateProvider):
    """api.exchangerate.host."""

    name = "exchangerate.host"

    def __init__(self, url: str) -> None:
        self._url = url

    def build_request(self, reference: str) -> tuple[str, dict[str, str]]:
        return self._url, {"base": reference}


class ExchangeRateApiProvider(RateProvider):
    """api.exchangerate-api.com (reference currency in the path)."""

    name = "exchangerate-api"

    def __init__(self, url: str) -> None:
        self._url = url.rstrip("/")

    def build_request(self, reference: str) -> tuple[str, dict[str, str]]:
        return f"{self._url}/{reference}", {}


#: Approximate JPY-referenced rates used when every provider fails.
#: 1 JPY = X units of currency.
FALLBACK_RATES_JPY: dict[str, float] = {
    "JPY": 1.0,
    "USD": 0.00671,  # ~149.0 JPY per USD
    "EUR": 0.00617,  # ~162.1 JPY per EUR
    "GBP": 0.00528,  # ~189.4 JPY per GBP
    "AUD": 0.01025,  # ~97.6 JPY per AUD
    "CHF": 0.00586,
    "CAD": 0.00924,
}


def fallback_rates(reference: str) -> tuple[dict[str, float], str]:
    """Deterministic demo table re-based onto ``reference``.

    Returns (rates, effective reference). When the reference currency is
    not in the table the JPY table is returned unchanged, tagged as JPY.
    """
    ref = reference.upper()
    ref_per_jpy = FALLBACK_RATES_JPY.get(ref)
    if ref_per_jpy is None:
        return dict(FALLBACK_RATES_JPY), "JPY"
    rates = {code: value / ref_per_jpy for code, value in FALLBACK_RATES_JPY.items()}
    return rates, ref
