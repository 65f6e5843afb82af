"""Tests for pair rate derivation.

Tests verify:
- Reciprocal derivation when the quote is the reference currency
- Cross derivation (quote / base) otherwise
- Missing, zero and non-finite inputs yield None
- derive_all skips underivable pairs
"""

import pytest

from fxsignal.models import DEFAULT_PAIRS, PairSpec, RateSnapshot
from fxsignal.rates.calculator import derive_all, derive_pair_rate


@pytest.fixture
def jpy_snapshot() -> RateSnapshot:
    return RateSnapshot(
        rates={"JPY": 1.0, "USD": 0.00671, "EUR": 0.00617, "GBP": 0.00528, "AUD": 0.01025},
        source="frankfurter",
        reference="JPY",
    )


class TestDerivePairRate:
    """Tests for derive_pair_rate."""

    def test_reciprocal_for_reference_quote(
        self, usd_jpy: PairSpec, jpy_snapshot: RateSnapshot
    ) -> None:
        rate = derive_pair_rate(usd_jpy, jpy_snapshot)
        assert rate == 1 / 0.00671
        assert rate == pytest.approx(149.03, abs=0.01)

    @pytest.mark.parametrize("code", ["USD", "EUR", "GBP", "AUD"])
    def test_reciprocal_property(self, code: str, jpy_snapshot: RateSnapshot) -> None:
        pair = PairSpec(id=f"{code}_JPY", base=code, quote="JPY", name=code)
        assert derive_pair_rate(pair, jpy_snapshot) == 1 / jpy_snapshot.rates[code]

    def test_cross_rate(self, eur_usd: PairSpec, jpy_snapshot: RateSnapshot) -> None:
        rate = derive_pair_rate(eur_usd, jpy_snapshot)
        assert rate == pytest.approx(0.00671 / 0.00617)
        assert rate == pytest.approx(1.0875, abs=1e-4)

    def test_missing_base(self, jpy_snapshot: RateSnapshot) -> None:
        pair = PairSpec(id="NZD_JPY", base="NZD", quote="JPY", name="Kiwi/Yen")
        assert derive_pair_rate(pair, jpy_snapshot) is None

    def test_missing_quote(self, jpy_snapshot: RateSnapshot) -> None:
        pair = PairSpec(id="EUR_CHF", base="EUR", quote="CHF", name="Euro/Franc")
        assert derive_pair_rate(pair, jpy_snapshot) is None

    @pytest.mark.parametrize("bad", [0.0, float("nan"), float("inf")])
    def test_unusable_base(self, usd_jpy: PairSpec, bad: float) -> None:
        snapshot = RateSnapshot(rates={"USD": bad}, source="s", reference="JPY")
        assert derive_pair_rate(usd_jpy, snapshot) is None

    def test_non_finite_result(self, eur_usd: PairSpec) -> None:
        snapshot = RateSnapshot(rates={"EUR": 1e-320, "USD": 1e300}, source="s", reference="JPY")
        assert derive_pair_rate(eur_usd, snapshot) is None


class TestDeriveAll:
    def test_all_default_pairs(self, jpy_snapshot: RateSnapshot) -> None:
        derived = derive_all(DEFAULT_PAIRS, jpy_snapshot)
        assert set(derived) == {p.id for p in DEFAULT_PAIRS}

    def test_skips_underivable(self) -> None:
        snapshot = RateSnapshot(rates={"USD": 0.00671}, source="s", reference="JPY")
        assert derive_all(DEFAULT_PAIRS, snapshot) == {"USD_JPY": 1 / 0.00671}
