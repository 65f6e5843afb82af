"""Rate acquisition layer -- public FX snapshot APIs with ordered fallback."""

from fxsignal.rates.aggregator import ProviderResult, RateAggregator, build_default_providers
from fxsignal.rates.calculator import derive_all, derive_pair_rate
from fxsignal.rates.providers import RateProvider, fallback_rates

__all__ = [
    "ProviderResult",
    "RateAggregator",
    "RateProvider",
    "build_default_providers",
    "derive_all",
    "derive_pair_rate",
    "fallback_rates",
]
