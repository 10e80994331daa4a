"""stratlab.backtest.strategies.macd

MACD signal-line crossover (long-only):
- buy when the MACD line crosses above its signal line
- sell when it crosses below
"""

from __future__ import annotations

from stratlab.backtest.indicators import MACD
from stratlab.backtest.io import PricePoint
from stratlab.backtest.models import MACDConfig, StrategyKind
from stratlab.backtest.strategies.base import CashFractionSizing, Signal, Strategy


class MACDStrategy(CashFractionSizing, Strategy):
    kind = StrategyKind.MACD

    def __init__(self, config: MACDConfig) -> None:
        super().__init__()
        self.config = config
        self.slow = int(config.slow_period)
        self.signal_period = int(config.signal_period)
        self.position_size_pct = float(config.position_size_pct)
        self._macd = MACD(int(config.fast_period), self.slow, self.signal_period)
        self._prev_hist: float | None = None

    @property
    def warmup_bars(self) -> int:
        # slow EMA seeds at bar `slow`, the signal EMA needs `signal_period`
        # MACD values on top, and a cross needs one more.
        return self.slow + self.signal_period

    def _on_bar(self, bar: PricePoint) -> Signal:
        hist = self._macd.update(bar.close)
        if hist is None:
            return Signal.HOLD

        prev, self._prev_hist = self._prev_hist, hist
        if prev is None:
            return Signal.HOLD
        if prev <= 0.0 < hist:
            return Signal.BUY
        if prev >= 0.0 > hist:
            return Signal.SELL
        return Signal.HOLD
