from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path

import numpy as np

from stratlab.backtest.io import PriceSeries
from stratlab.core.time import start_of_day

YEAR_2023 = (date(2023, 1, 1), date(2023, 12, 31))
TODAY = date(2024, 6, 1)


def daily_series(closes, *, symbol: str = "BTCUSDT", start: date = YEAR_2023[0]) -> PriceSeries:
    return PriceSeries.from_closes(symbol, closes, start=start_of_day(start), step=timedelta(days=1))


def dip_then_recovery(n: int = 365) -> np.ndarray:
    """Choppy flat start, a steady slide, then a long climb past the start."""

    flat = 100.0 + 0.5 * np.array([(-1.0) ** i for i in range(60)])
    down = np.linspace(100.0, 60.0, 60)
    up = np.linspace(60.0, 130.0, n - 120)
    return np.concatenate([flat, down, up])


def write_csv(path: Path, series: PriceSeries) -> Path:
    lines = ["timestamp,open,high,low,close,volume"]
    for b in series:
        lines.append(f"{b.timestamp.isoformat()},{b.open},{b.high},{b.low},{b.close},{b.volume}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
