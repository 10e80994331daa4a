"""stratlab.backtest.strategies.sma_crossover

Moving average crossover:
- buy when the fast SMA crosses above the slow SMA
- sell when it crosses back below

No shorting.
"""

from __future__ import annotations

from stratlab.backtest.indicators import RollingMean
from stratlab.backtest.io import PricePoint
from stratlab.backtest.models import SMACrossoverConfig, StrategyKind
from stratlab.backtest.strategies.base import CashFractionSizing, Signal, Strategy


class SMACrossoverStrategy(CashFractionSizing, Strategy):
    kind = StrategyKind.SMA_CROSSOVER

    def __init__(self, config: SMACrossoverConfig) -> None:
        super().__init__()
        self.config = config
        self.fast = int(config.fast_period)
        self.slow = int(config.slow_period)
        self.position_size_pct = float(config.position_size_pct)
        self._fast = RollingMean(self.fast)
        self._slow = RollingMean(self.slow)
        self._prev_spread: float | None = None

    @property
    def warmup_bars(self) -> int:
        # One extra bar: a cross needs a previous spread to compare against.
        return self.slow + 1

    def _on_bar(self, bar: PricePoint) -> Signal:
        f = self._fast.update(bar.close)
        s = self._slow.update(bar.close)
        if f is None or s is None:
            return Signal.HOLD

        spread = f - s
        prev, self._prev_spread = self._prev_spread, spread
        if prev is None:
            return Signal.HOLD
        if prev <= 0.0 < spread:
            return Signal.BUY
        if prev >= 0.0 > spread:
            return Signal.SELL
        return Signal.HOLD
