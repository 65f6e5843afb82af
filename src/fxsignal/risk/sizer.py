"""Risk-based position sizing.

All money arithmetic uses Decimal. Prices arrive as floats from the rate
feed and are converted through str() so 148.96 stays 148.96.

Sizing flow:
1. max_loss = capital * risk_percent / 100
2. stop_distance = |current_price - stop_loss_price|
3. raw_lots = max_loss / (stop_distance * lot_size)
   (stop_distance == 0 -> MIN_LOTS instead of dividing)
4. lots = clamp(raw_lots, MIN_LOTS, MAX_LOTS), rounded down to LOT_STEP
5. required_margin = current_price * lot_size * lots / leverage

The [MIN_LOTS, MAX_LOTS] clamp is a hard ceiling independent of the
formula: a near-zero stop distance must never produce a huge position.
"""

import math
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from fxsignal.config import RiskSettings
from fxsignal.models import RiskPlan

MIN_LOTS = Decimal("0.01")
MAX_LOTS = Decimal("10")
LOT_STEP = Decimal("0.01")
_MONEY_QUANTUM = Decimal("0.01")


def to_decimal(value: float) -> Decimal:
    """Convert a feed float to Decimal via its shortest repr."""
    return Decimal(str(value))


def clamp_lots(raw_lots: Decimal) -> Decimal:
    """Clamp to [MIN_LOTS, MAX_LOTS] and round down to LOT_STEP."""
    bounded = min(max(raw_lots, MIN_LOTS), MAX_LOTS)
    return bounded.quantize(LOT_STEP, rounding=ROUND_DOWN)


class RiskSizer:
    """Converts account capital, risk tolerance and leverage into a RiskPlan.

    Stateless: every call receives the settings snapshot to use, so a
    concurrent settings change can never mix old and new values inside one
    plan.
    """

    def size(
        self,
        current_price: float,
        stop_loss_price: float,
        settings: RiskSettings,
    ) -> RiskPlan:
        """Compute lots, maximum loss and required margin for one trade.

        Args:
            current_price: Entry price (quote units per base unit).
            stop_loss_price: Stop-loss price.
            settings: Consistent snapshot of the account risk settings.

        Returns:
            RiskPlan with optimal_lots always within [0.01, 10].
        """
        max_loss = (settings.capital * settings.risk_fraction).quantize(
            _MONEY_QUANTUM, rounding=ROUND_HALF_UP
        )

        if not (math.isfinite(current_price) and math.isfinite(stop_loss_price)) or current_price <= 0:
            return RiskPlan(
                optimal_lots=MIN_LOTS,
                max_loss_amount=max_loss,
                required_margin=Decimal("0.00"),
            )

        price = to_decimal(current_price)
        stop_distance = abs(price - to_decimal(stop_loss_price))

        if stop_distance == 0:
            lots = MIN_LOTS
        else:
            lots = clamp_lots(max_loss / (stop_distance * settings.lot_size))

        margin = (price * settings.lot_size * lots / Decimal(settings.leverage)).quantize(
            _MONEY_QUANTUM, rounding=ROUND_HALF_UP
        )

        return RiskPlan(
            optimal_lots=lots,
            max_loss_amount=max_loss,
            required_margin=margin,
            stop_distance=stop_distance,
        )
