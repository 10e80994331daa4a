"""stratlab.backtest.strategies.dca

Dollar-cost averaging: buy a fixed amount every ``interval_hours``,
regardless of price. Never sells on its own; exits come from stop-loss /
take-profit when configured.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from stratlab.backtest.io import PricePoint
from stratlab.backtest.models import DCAConfig, StrategyKind
from stratlab.backtest.strategies.base import Signal, Strategy


class DCAStrategy(Strategy):
    kind = StrategyKind.DCA
    accumulates = True

    def __init__(self, config: DCAConfig) -> None:
        super().__init__()
        self.config = config
        self.amount = float(config.amount_per_buy)
        self.interval = timedelta(hours=float(config.interval_hours))
        self._last_buy_at: datetime | None = None

    @property
    def warmup_bars(self) -> int:
        return 1

    def _on_bar(self, bar: PricePoint) -> Signal:
        if self._last_buy_at is None or bar.timestamp - self._last_buy_at >= self.interval:
            self._last_buy_at = bar.timestamp
            return Signal.BUY
        return Signal.HOLD

    def order_notional(self, cash: float) -> float:
        return self.amount
