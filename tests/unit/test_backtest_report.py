from __future__ import annotations

from datetime import date

import numpy as np
import pydantic
import pytest

from stratlab.backtest.metrics import compute_metrics
from stratlab.backtest.report import build_report
from stratlab.backtest.simulator import Phase, PortfolioState, Side, SimResult, Trade
from stratlab.backtest.validation import ensure_valid
from stratlab.core.time import start_of_day


def _validated():
    return ensure_valid(
        {
            "strategy_kind": "sma_crossover",
            "config": {},
            "asset_symbol": "BTCUSDT",
            "start_date": "2023-01-01",
            "end_date": "2023-02-15",
            "initial_capital": 1_000,
        },
        today=date(2024, 1, 1),
    )


def _sim(equity, trades=()) -> SimResult:
    ts = tuple(start_of_day(date(2023, 1, 1 + i)) for i in range(len(equity)))
    eq = np.asarray(equity, dtype=np.float64)
    return SimResult(
        timestamps=ts,
        equity=eq,
        closes=eq / 10.0,
        trades=tuple(trades),
        skipped=(),
        final=PortfolioState(cash=float(eq[-1]) if eq.size else 0.0),
        phase=Phase.CLOSED,
    )


def test_report_shapes_result():
    buy = Trade(start_of_day(date(2023, 1, 1)), Side.BUY, 100.0, 10.0, 1_000.0, 0.0, 10.0, "strategy_signal")
    sim = _sim([1_000.0, 1_100.0, 1_050.0], [buy])
    m = compute_metrics(equity=sim.equity, timestamps=sim.timestamps, trades=sim.trades, initial_capital=1_000.0)
    res = build_report(_validated(), sim, m)

    assert res.asset_symbol == "BTCUSDT"
    assert res.final_balance == pytest.approx(1_050.0)
    assert res.total_return_percentage == pytest.approx(5.0)
    assert [d.return_percentage for d in res.daily_returns] == pytest.approx([0.0, 10.0, 5.0])
    assert res.daily_returns[1].date == date(2023, 1, 2)
    assert res.trades[0].side == "buy"
    assert res.bars == 3


def test_report_refuses_empty_simulation():
    sim = _sim([])
    m = compute_metrics(equity=sim.equity, timestamps=sim.timestamps, trades=[], initial_capital=1_000.0)
    with pytest.raises(ValueError):
        build_report(_validated(), sim, m)


def test_result_is_immutable():
    sim = _sim([1_000.0, 1_000.0])
    m = compute_metrics(equity=sim.equity, timestamps=sim.timestamps, trades=[], initial_capital=1_000.0)
    res = build_report(_validated(), sim, m)
    with pytest.raises(pydantic.ValidationError):
        res.final_balance = 0.0
