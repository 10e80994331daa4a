"""stratlab.backtest.strategies.grid

Grid trading.

The first close is the grid center. ``grid_count`` levels are spaced evenly
from ``center * (1 - r)`` to ``center * (1 + r)`` (r = range_percentage /
100). Each close is placed in a band between two adjacent levels:
- dropping into a lower band buys one lot (investment_amount / grid_count)
- rising into a higher band sells
- outside the grid nothing happens, and re-entry starts fresh
"""

from __future__ import annotations

from bisect import bisect_right

from stratlab.backtest.io import PricePoint
from stratlab.backtest.models import GridTradingConfig, StrategyKind
from stratlab.backtest.strategies.base import Signal, Strategy


def grid_levels(center: float, *, count: int, range_pct: float) -> list[float]:
    r = float(range_pct) / 100.0
    lo = center * (1.0 - r)
    hi = center * (1.0 + r)
    step = (hi - lo) / (count - 1)
    return [lo + i * step for i in range(count)]


class GridTradingStrategy(Strategy):
    kind = StrategyKind.GRID_TRADING
    accumulates = True

    def __init__(self, config: GridTradingConfig) -> None:
        super().__init__()
        self.config = config
        self.count = int(config.grid_count)
        self.range_pct = float(config.range_percentage)
        self.lot = float(config.investment_amount) / self.count
        self.levels: list[float] | None = None
        self._band: int | None = None

    @property
    def warmup_bars(self) -> int:
        return 1

    def band_of(self, price: float) -> int | None:
        """Index of the band containing ``price`` (0 = lowest), None outside the grid."""

        if self.levels is None or price < self.levels[0] or price > self.levels[-1]:
            return None
        return min(bisect_right(self.levels, price) - 1, len(self.levels) - 2)

    def _on_bar(self, bar: PricePoint) -> Signal:
        if self.levels is None:
            self.levels = grid_levels(bar.close, count=self.count, range_pct=self.range_pct)
            self._band = self.band_of(bar.close)
            return Signal.HOLD

        band = self.band_of(bar.close)
        prev, self._band = self._band, band
        if band is None or prev is None:
            return Signal.HOLD
        if band < prev:
            return Signal.BUY
        if band > prev:
            return Signal.SELL
        return Signal.HOLD

    def order_notional(self, cash: float) -> float:
        return self.lot
