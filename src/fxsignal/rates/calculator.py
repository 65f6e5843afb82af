"""Pair rate derivation from a reference-currency snapshot.

A snapshot maps each currency to "units per 1 reference unit". Two cases:

    quote == reference:  rate = 1 / snapshot[base]        (e.g. USD/JPY)
    otherwise:           rate = snapshot[quote] / snapshot[base]   (e.g. EUR/USD)

The asymmetry encodes which currency is the pricing reference and must not
be "simplified" away. Missing, zero or non-finite inputs yield None so no
NaN or infinity ever reaches the history store.
"""

import math

from fxsignal.models import PairSpec, RateSnapshot


def _usable(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value != 0


def derive_pair_rate(pair: PairSpec, snapshot: RateSnapshot) -> float | None:
    """Return the pair's quote (units of quote per 1 base), or None if underivable."""
    base_rate = snapshot.get(pair.base)
    if not _usable(base_rate):
        return None

    if pair.quote == snapshot.reference:
        result = 1.0 / base_rate
    else:
        quote_rate = snapshot.get(pair.quote)
        if not _usable(quote_rate):
            return None
        result = quote_rate / base_rate

    if not math.isfinite(result) or result <= 0:
        return None
    return result


def derive_all(
    pairs: tuple[PairSpec, ...] | list[PairSpec], snapshot: RateSnapshot
) -> dict[str, float]:
    """Derive every pair that can be derived; skipped pairs are simply absent."""
    derived: dict[str, float] = {}
    for pair in pairs:
        rate = derive_pair_rate(pair, snapshot)
        if rate is not None:
            derived[pair.id] = rate
    return derived
