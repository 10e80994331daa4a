"""stratlab.backtest.io

Price series containers and sources.

The market-data fetcher itself lives outside this package. Whatever it hands
over is checked here before a single bar is simulated: a hole in the history
is a data error, not something to interpolate.

CSV schema:
- required: timestamp, close
- optional: open, high, low, volume (open/high/low default to close)

`timestamp` is ISO-8601 or epoch seconds/milliseconds.
"""

from __future__ import annotations

import csv
import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from statistics import median
from typing import Protocol, runtime_checkable

import numpy as np

from stratlab.core.cache import TTLCache
from stratlab.core.exceptions import DataError, DataUnavailableError
from stratlab.core.time import end_of_day, from_epoch, parse_dt, start_of_day

logger = logging.getLogger(__name__)

# A spacing wider than this multiple of the typical spacing means bars are missing.
MAX_GAP_FACTOR = 1.5


@dataclass(frozen=True, slots=True)
class PricePoint:
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True, slots=True)
class PriceSeries:
    """Ordered, immutable bar sequence for one asset. Safe to share across runs."""

    symbol: str
    bars: tuple[PricePoint, ...]

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self.bars)

    @property
    def timestamps(self) -> tuple[datetime, ...]:
        return tuple(b.timestamp for b in self.bars)

    @property
    def closes(self) -> np.ndarray:
        return np.array([b.close for b in self.bars], dtype=np.float64)

    def between(self, start: date, end: date) -> PriceSeries:
        """Bars whose timestamp falls on a calendar day in [start, end]."""

        lo = start_of_day(start)
        hi = end_of_day(end)
        return PriceSeries(symbol=self.symbol, bars=tuple(b for b in self.bars if lo <= b.timestamp <= hi))

    @classmethod
    def from_closes(
        cls,
        symbol: str,
        closes: Sequence[float] | np.ndarray,
        *,
        start: datetime,
        step: timedelta = timedelta(days=1),
    ) -> PriceSeries:
        """Build bars from closes alone: open = previous close, high/low span both."""

        bars: list[PricePoint] = []
        prev: float | None = None
        for i, c in enumerate(closes):
            close = float(c)
            open_ = close if prev is None else prev
            bars.append(
                PricePoint(
                    timestamp=start + i * step,
                    open=open_,
                    high=max(open_, close),
                    low=min(open_, close),
                    close=close,
                )
            )
            prev = close
        return cls(symbol=symbol, bars=tuple(bars))


def bar_interval(series: PriceSeries) -> timedelta | None:
    """Typical bar spacing (median of consecutive deltas)."""

    ts = series.timestamps
    if len(ts) < 2:
        return None
    return timedelta(seconds=median((b - a).total_seconds() for a, b in zip(ts, ts[1:], strict=False)))


def check_series(series: PriceSeries, *, start: date | None = None, end: date | None = None) -> None:
    """Raise DataError if the series cannot be simulated as-is.

    Checks:
    - non-empty
    - strictly increasing timestamps
    - finite, positive OHLC with low <= high; finite, non-negative volume
    - no missing bars (spacing wider than MAX_GAP_FACTOR x typical)
    - when a range is given, the series covers it end to end
    """

    if len(series) == 0:
        raise DataUnavailableError(f"No price history for {series.symbol}")

    for i, b in enumerate(series.bars):
        prices = (b.open, b.high, b.low, b.close)
        if not all(math.isfinite(p) and p > 0.0 for p in prices):
            raise DataError(f"{series.symbol}: non-positive or non-finite price at bar {i} ({b.timestamp.isoformat()})")
        if b.low > b.high:
            raise DataError(f"{series.symbol}: low above high at bar {i} ({b.timestamp.isoformat()})")
        if not math.isfinite(b.volume) or b.volume < 0.0:
            raise DataError(f"{series.symbol}: invalid volume at bar {i} ({b.timestamp.isoformat()})")

    ts = series.timestamps
    for i in range(1, len(ts)):
        if ts[i] <= ts[i - 1]:
            raise DataError(f"{series.symbol}: timestamps not strictly increasing at bar {i} ({ts[i].isoformat()})")

    interval = bar_interval(series)
    if interval is not None:
        max_gap = interval * MAX_GAP_FACTOR
        for i in range(1, len(ts)):
            if ts[i] - ts[i - 1] > max_gap:
                raise DataError(
                    f"{series.symbol}: missing bars between {ts[i - 1].isoformat()} and {ts[i].isoformat()}"
                )

    if start is not None and end is not None:
        slack = max(interval * MAX_GAP_FACTOR if interval is not None else timedelta(0), timedelta(days=1))
        if ts[0] - start_of_day(start) > slack or end_of_day(end) - ts[-1] > slack:
            raise DataError(
                f"{series.symbol}: history {ts[0].date()}..{ts[-1].date()} does not cover {start}..{end}"
            )


def _parse_ts(raw: str) -> datetime:
    try:
        v = float(raw)
    except ValueError:
        return parse_dt(raw)
    try:
        return from_epoch(v)
    except (OverflowError, OSError) as e:
        raise ValueError(f"epoch timestamp out of range: {raw}") from e


def load_prices_csv(path: str | Path, *, symbol: str | None = None) -> PriceSeries:
    p = Path(path)
    sym = symbol or p.stem.upper()
    rows: list[dict[str, str]] = []
    with p.open("r", encoding="utf-8") as f:
        r = csv.DictReader(f)
        for row in r:
            rows.append({k.strip().lower(): (v.strip() if isinstance(v, str) else "") for k, v in row.items() if k is not None})

    if not rows:
        return PriceSeries(symbol=sym, bars=())

    for required in ("timestamp", "close"):
        if required not in rows[0]:
            raise DataError(f"CSV missing required column: {required} ({p})")

    def num(row: dict[str, str], name: str, default: float) -> float:
        v = row.get(name, "")
        if v is None or v == "":
            return default
        return float(v)

    bars: list[PricePoint] = []
    for line, row in enumerate(rows, start=2):
        try:
            close = float(row["close"])
            bars.append(
                PricePoint(
                    timestamp=_parse_ts(row["timestamp"]),
                    open=num(row, "open", close),
                    high=num(row, "high", close),
                    low=num(row, "low", close),
                    close=close,
                    volume=num(row, "volume", 0.0),
                )
            )
        except (ValueError, OverflowError) as e:
            raise DataError(f"{p}:{line}: malformed row: {e}") from e

    return PriceSeries(symbol=sym, bars=tuple(bars))


@runtime_checkable
class PriceSource(Protocol):
    def fetch(self, symbol: str, start: date, end: date) -> PriceSeries: ...


class MemoryPriceSource:
    """Serves pre-loaded series. Handy for tests and for callers that already hold the data."""

    def __init__(self, series: dict[str, PriceSeries] | None = None) -> None:
        self._series: dict[str, PriceSeries] = {k.upper(): v for k, v in (series or {}).items()}

    def add(self, series: PriceSeries) -> None:
        self._series[series.symbol.upper()] = series

    def fetch(self, symbol: str, start: date, end: date) -> PriceSeries:
        s = self._series.get(symbol.upper())
        if s is None:
            raise DataUnavailableError(f"No price history for {symbol}")
        return s.between(start, end)


class CsvPriceSource:
    """Reads ``<dir>/<SYMBOL>.csv``."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def fetch(self, symbol: str, start: date, end: date) -> PriceSeries:
        path = self.directory / f"{symbol.upper()}.csv"
        if not path.exists():
            raise DataUnavailableError(f"No price history for {symbol} (expected {path})")
        logger.debug("price_csv_load", extra={"path": str(path), "symbol": symbol})
        return load_prices_csv(path, symbol=symbol.upper()).between(start, end)


class CachedPriceSource:
    """TTL cache in front of another source. Cached series are immutable, so sharing is safe."""

    def __init__(self, source: PriceSource, *, ttl_s: float = 300.0, max_entries: int | None = 64) -> None:
        self.source = source
        self.cache = TTLCache(default_ttl_s=ttl_s, max_entries=max_entries)

    def fetch(self, symbol: str, start: date, end: date) -> PriceSeries:
        key = (symbol.upper(), start.isoformat(), end.isoformat())
        return self.cache.get_or_set(key, lambda: self.source.fetch(symbol, start, end))
