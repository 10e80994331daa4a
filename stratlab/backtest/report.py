"""stratlab.backtest.report

Assemble the caller-facing result from a finished simulation and its metrics.
"""

from __future__ import annotations

from stratlab.backtest.metrics import Metrics
from stratlab.backtest.models import BacktestResult, DailyReturn, TradeRecord
from stratlab.backtest.simulator import SimResult, Trade
from stratlab.backtest.validation import ValidatedRequest


def _trade_record(t: Trade) -> TradeRecord:
    return TradeRecord(
        timestamp=t.timestamp,
        side=t.side.value,
        price=t.price,
        quantity=t.quantity,
        notional=t.notional,
        cash_after=t.cash_after,
        position_after=t.position_after,
        reason=t.reason,
        realized_pnl=t.realized_pnl,
    )


def daily_returns(sim: SimResult, *, initial_capital: float) -> list[DailyReturn]:
    """One entry per bar, in bar order. Return is cumulative against initial capital."""

    initial = float(initial_capital)
    return [
        DailyReturn(
            date=ts.date(),
            portfolio_value=float(v),
            return_percentage=(float(v) / initial - 1.0) * 100.0,
        )
        for ts, v in zip(sim.timestamps, sim.equity, strict=True)
    ]


def build_report(validated: ValidatedRequest, sim: SimResult, metrics: Metrics) -> BacktestResult:
    if len(sim.timestamps) == 0:
        raise ValueError("Cannot report on a simulation with no bars")
    if len(sim.timestamps) != int(sim.equity.shape[0]):
        raise ValueError("Equity curve and timestamps differ in length")

    req = validated.request
    initial = float(req.initial_capital)

    return BacktestResult(
        strategy_kind=req.strategy_kind,
        asset_symbol=req.asset_symbol,
        total_return=metrics.total_return,
        total_return_percentage=metrics.total_return_pct,
        sharpe_ratio=metrics.sharpe,
        max_drawdown=metrics.max_drawdown,
        max_drawdown_percentage=metrics.max_drawdown_pct,
        total_trades=metrics.total_trades,
        win_rate=metrics.win_rate_pct,
        final_balance=float(sim.equity[-1]),
        initial_balance=initial,
        volatility=metrics.volatility_pct,
        start_date=req.start_date,
        end_date=req.end_date,
        daily_returns=daily_returns(sim, initial_capital=initial),
        winning_trades=metrics.winning_trades,
        losing_trades=metrics.losing_trades,
        average_win=metrics.average_win,
        average_loss=metrics.average_loss,
        profit_factor=metrics.profit_factor,
        annualized_return=metrics.annualized_return_pct,
        benchmark_return=metrics.benchmark_return_pct,
        total_invested=sim.final.total_invested,
        skipped_orders=len(sim.skipped),
        bars=len(sim.timestamps),
        trades=[_trade_record(t) for t in sim.trades],
    )
