"""stratlab.backtest.indicators

Incremental indicators.

Each indicator is fed one value per bar and never sees the future. ``update``
returns ``None`` until enough history has accumulated; callers treat that as
"still warming up".
"""

from __future__ import annotations

import math
from collections import deque


class RollingMean:
    """Simple moving average over the last ``period`` values."""

    def __init__(self, period: int) -> None:
        if period <= 0:
            raise ValueError("period must be > 0")
        self.period = int(period)
        self._window: deque[float] = deque(maxlen=self.period)

    def update(self, value: float) -> float | None:
        self._window.append(float(value))
        return self.value

    @property
    def value(self) -> float | None:
        if len(self._window) < self.period:
            return None
        # fsum keeps the mean independent of accumulated rounding drift.
        return math.fsum(self._window) / self.period


class EMA:
    """Exponential moving average, seeded with the SMA of the first ``period`` values."""

    def __init__(self, period: int) -> None:
        if period <= 0:
            raise ValueError("period must be > 0")
        self.period = int(period)
        self.alpha = 2.0 / (self.period + 1.0)
        self._seed: list[float] = []
        self._value: float | None = None

    def update(self, value: float) -> float | None:
        v = float(value)
        if self._value is None:
            self._seed.append(v)
            if len(self._seed) == self.period:
                self._value = math.fsum(self._seed) / self.period
                self._seed.clear()
            return self._value
        self._value = self.alpha * v + (1.0 - self.alpha) * self._value
        return self._value

    @property
    def value(self) -> float | None:
        return self._value


class WilderRSI:
    """Relative Strength Index with Wilder smoothing.

    The first value appears after ``period + 1`` closes (``period`` price
    changes seed the averages). A window with no movement at all reads 50.
    """

    def __init__(self, period: int) -> None:
        if period <= 1:
            raise ValueError("period must be > 1")
        self.period = int(period)
        self._prev: float | None = None
        self._gains: list[float] = []
        self._losses: list[float] = []
        self._avg_gain: float | None = None
        self._avg_loss: float | None = None

    def update(self, close: float) -> float | None:
        c = float(close)
        if self._prev is None:
            self._prev = c
            return None

        change = c - self._prev
        self._prev = c
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0

        if self._avg_gain is None or self._avg_loss is None:
            self._gains.append(gain)
            self._losses.append(loss)
            if len(self._gains) < self.period:
                return None
            self._avg_gain = math.fsum(self._gains) / self.period
            self._avg_loss = math.fsum(self._losses) / self.period
            self._gains.clear()
            self._losses.clear()
        else:
            n = self.period
            self._avg_gain = (self._avg_gain * (n - 1) + gain) / n
            self._avg_loss = (self._avg_loss * (n - 1) + loss) / n

        return self.value

    @property
    def value(self) -> float | None:
        if self._avg_gain is None or self._avg_loss is None:
            return None
        if self._avg_loss == 0.0:
            return 100.0 if self._avg_gain > 0.0 else 50.0
        rs = self._avg_gain / self._avg_loss
        return 100.0 - (100.0 / (1.0 + rs))


class MACD:
    """MACD line (fast EMA - slow EMA) with an EMA signal line over it."""

    def __init__(self, fast: int, slow: int, signal: int) -> None:
        if fast >= slow:
            raise ValueError("fast period must be < slow period")
        self._fast = EMA(fast)
        self._slow = EMA(slow)
        self._signal = EMA(signal)
        self.macd: float | None = None
        self.signal: float | None = None

    def update(self, close: float) -> float | None:
        """Feed one close; return the histogram (macd - signal) once available."""

        f = self._fast.update(close)
        s = self._slow.update(close)
        if f is None or s is None:
            return None
        self.macd = f - s
        self.signal = self._signal.update(self.macd)
        if self.signal is None:
            return None
        return self.macd - self.signal
