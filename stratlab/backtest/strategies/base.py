"""stratlab.backtest.strategies.base

Backtest strategy contract.

A strategy is fed one bar at a time and answers buy, sell or hold. It owns
its rolling indicator state and nothing else: no cash, no positions, no view
of bars that have not happened yet. One instance per run.

Signal convention:
- BUY  = open, or add to, a long position
- SELL = close the whole position
- HOLD = do nothing

The simulator translates signals into trades.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import ClassVar

from stratlab.backtest.io import PricePoint
from stratlab.backtest.models import StrategyKind


class Signal(StrEnum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class Strategy(ABC):
    kind: ClassVar[StrategyKind]
    # Whether a BUY while already holding adds to the position.
    accumulates: ClassVar[bool] = False

    def __init__(self) -> None:
        self.bars_seen = 0

    @property
    @abstractmethod
    def warmup_bars(self) -> int:
        """Bars needed before the first meaningful signal."""

    @property
    def is_warm(self) -> bool:
        return self.bars_seen >= self.warmup_bars

    def next_signal(self, bar: PricePoint) -> Signal:
        """Advance indicator state by one bar and return the decision for it.

        Always feed every bar, even ones the caller will not act on; skipping
        bars would desynchronise the indicators.
        """

        self.bars_seen += 1
        signal = self._on_bar(bar)
        if not self.is_warm:
            return Signal.HOLD
        return signal

    @abstractmethod
    def _on_bar(self, bar: PricePoint) -> Signal:
        raise NotImplementedError

    @abstractmethod
    def order_notional(self, cash: float) -> float:
        """Quote-currency size of one BUY given the cash on hand."""


class CashFractionSizing:
    """Mixin: each entry spends ``position_size_pct`` of available cash."""

    position_size_pct: float

    def order_notional(self, cash: float) -> float:
        # Divide first: pct / 100 <= 1.0 exactly, so the lot never exceeds cash.
        return float(cash) * (float(self.position_size_pct) / 100.0)
