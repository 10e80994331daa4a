"""stratlab.backtest.metrics

Performance metrics over an equity curve and trade log.

Pure functions. Degenerate inputs (flat equity, no trades, one bar) are
valid outcomes and map to defined numbers, never NaN or an exception.

Conventions:
- per-bar return r_t = V_t / V_{t-1} - 1, with V_{-1} = initial capital
- Sharpe annualises by bars per year inferred from the median bar spacing
- drawdown is measured against the running peak of the equity curve; the
  first of several equally deep troughs is the one reported
- percentages are x100
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from stratlab.backtest.simulator import Side, Trade

SECONDS_PER_YEAR = 365.0 * 86400.0
# No losing trades: report a capped factor instead of infinity.
PROFIT_FACTOR_CAP = 999.0
# Standard deviations below this are numerical noise on a flat curve.
_ZERO_STD = 1e-12


@dataclass(frozen=True, slots=True)
class Metrics:
    total_return: float
    total_return_pct: float
    sharpe: float
    volatility_pct: float
    max_drawdown: float
    max_drawdown_pct: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate_pct: float
    average_win: float
    average_loss: float
    profit_factor: float | None
    annualized_return_pct: float | None
    benchmark_return_pct: float | None


def bar_returns(equity: np.ndarray, *, initial: float) -> np.ndarray:
    e = equity.astype(np.float64)
    if e.size == 0:
        return np.zeros(0, dtype=np.float64)
    prev = np.concatenate(([float(initial)], e[:-1]))
    out = np.zeros_like(e)
    ok = prev > 0.0
    out[ok] = e[ok] / prev[ok] - 1.0
    return out


def periods_per_year(timestamps: Sequence[datetime], *, default: int = 365) -> int:
    if len(timestamps) < 2:
        return int(default)
    deltas = np.array([(b - a).total_seconds() for a, b in zip(timestamps, timestamps[1:], strict=False)])
    spacing = float(np.median(deltas))
    if spacing <= 0.0:
        return int(default)
    return max(1, round(SECONDS_PER_YEAR / spacing))


def volatility(returns: np.ndarray) -> float:
    """Sample standard deviation of per-bar returns, in percent."""

    r = returns.astype(np.float64)
    if r.size < 2:
        return 0.0
    sd = float(np.std(r, ddof=1))
    if not math.isfinite(sd) or sd < _ZERO_STD:
        return 0.0
    return sd * 100.0


def sharpe(returns: np.ndarray, *, periods_per_year: int = 365, risk_free_rate: float = 0.0) -> float:
    r = returns.astype(np.float64)
    if r.size < 2:
        return 0.0
    excess = r - float(risk_free_rate) / float(periods_per_year)
    mu = float(np.mean(excess))
    sd = float(np.std(excess, ddof=1))
    if not math.isfinite(sd) or sd < _ZERO_STD:
        return 0.0
    out = (mu / sd) * math.sqrt(periods_per_year)
    return out if math.isfinite(out) else 0.0


def max_drawdown(equity: np.ndarray) -> tuple[float, float]:
    """Deepest peak-to-trough decline as (currency, percent of peak), both <= 0."""

    e = equity.astype(np.float64)
    if e.size == 0:
        return 0.0, 0.0
    peak = np.maximum.accumulate(e)
    dd = np.zeros_like(e)
    ok = peak > 0.0
    dd[ok] = e[ok] / peak[ok] - 1.0
    idx = int(np.argmin(dd))  # first occurrence on ties
    if dd[idx] >= 0.0:
        return 0.0, 0.0
    return float(e[idx] - peak[idx]), float(dd[idx] * 100.0)


@dataclass(frozen=True, slots=True)
class TradeStats:
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate_pct: float
    average_win: float
    average_loss: float
    profit_factor: float | None


def trade_stats(trades: Sequence[Trade]) -> TradeStats:
    """Win rate is over closing trades: a round trip wins when its realized P&L is positive."""

    closes = [t.realized_pnl for t in trades if t.side is Side.SELL and t.realized_pnl is not None]
    wins = [p for p in closes if p > 0.0]
    losses = [-p for p in closes if p < 0.0]

    gross_win = math.fsum(wins)
    gross_loss = math.fsum(losses)
    if gross_loss > 0.0:
        pf: float | None = gross_win / gross_loss
    elif gross_win > 0.0:
        pf = PROFIT_FACTOR_CAP
    else:
        pf = None

    return TradeStats(
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate_pct=(len(wins) / len(closes) * 100.0) if closes else 0.0,
        average_win=(gross_win / len(wins)) if wins else 0.0,
        average_loss=(gross_loss / len(losses)) if losses else 0.0,
        profit_factor=pf,
    )


def annualized_return(*, initial: float, final: float, days: float) -> float | None:
    if days <= 0.0 or initial <= 0.0:
        return None
    ratio = final / initial
    if ratio <= 0.0:
        return -100.0
    return (ratio ** (365.25 / days) - 1.0) * 100.0


def benchmark_return(closes: np.ndarray) -> float | None:
    """Buy-and-hold over the same bars, in percent."""

    c = closes.astype(np.float64)
    if c.size == 0 or c[0] <= 0.0:
        return None
    return float((c[-1] / c[0] - 1.0) * 100.0)


def compute_metrics(
    *,
    equity: np.ndarray,
    timestamps: Sequence[datetime],
    trades: Sequence[Trade],
    initial_capital: float,
    closes: np.ndarray | None = None,
    span_days: float | None = None,
    risk_free_rate: float = 0.0,
    default_periods_per_year: int = 365,
) -> Metrics:
    initial = float(initial_capital)
    final = float(equity[-1]) if equity.size else initial
    total_return = final - initial

    rets = bar_returns(equity, initial=initial)
    ppy = periods_per_year(timestamps, default=default_periods_per_year)
    dd_abs, dd_pct = max_drawdown(equity)
    ts = trade_stats(trades)

    if span_days is None:
        span_days = (timestamps[-1] - timestamps[0]).total_seconds() / 86400.0 if len(timestamps) >= 2 else 0.0

    return Metrics(
        total_return=total_return,
        total_return_pct=(total_return / initial * 100.0) if initial > 0.0 else 0.0,
        sharpe=sharpe(rets, periods_per_year=ppy, risk_free_rate=risk_free_rate),
        volatility_pct=volatility(rets),
        max_drawdown=dd_abs,
        max_drawdown_pct=dd_pct,
        total_trades=ts.total_trades,
        winning_trades=ts.winning_trades,
        losing_trades=ts.losing_trades,
        win_rate_pct=ts.win_rate_pct,
        average_win=ts.average_win,
        average_loss=ts.average_loss,
        profit_factor=ts.profit_factor,
        annualized_return_pct=annualized_return(initial=initial, final=final, days=float(span_days)),
        benchmark_return_pct=benchmark_return(closes) if closes is not None else None,
    )
