"""stratlab.backtest.strategies.rsi

RSI reversion (long-only):
- buy when RSI < oversold
- sell when RSI > overbought
"""

from __future__ import annotations

from stratlab.backtest.indicators import WilderRSI
from stratlab.backtest.io import PricePoint
from stratlab.backtest.models import RSIConfig, StrategyKind
from stratlab.backtest.strategies.base import CashFractionSizing, Signal, Strategy


class RSIStrategy(CashFractionSizing, Strategy):
    kind = StrategyKind.RSI

    def __init__(self, config: RSIConfig) -> None:
        super().__init__()
        self.config = config
        self.period = int(config.period)
        self.oversold = float(config.oversold)
        self.overbought = float(config.overbought)
        self.position_size_pct = float(config.position_size_pct)
        self._rsi = WilderRSI(self.period)
        self.last_rsi: float | None = None

    @property
    def warmup_bars(self) -> int:
        return self.period + 1

    def _on_bar(self, bar: PricePoint) -> Signal:
        r = self._rsi.update(bar.close)
        self.last_rsi = r
        if r is None:
            return Signal.HOLD
        if r < self.oversold:
            return Signal.BUY
        if r > self.overbought:
            return Signal.SELL
        return Signal.HOLD
