from __future__ import annotations

import threading
from datetime import date

import numpy as np
import pytest

from stratlab.backtest.engine import Cancelled, run_backtest
from stratlab.backtest.io import MemoryPriceSource, PriceSeries
from stratlab.backtest.models import BacktestResult
from stratlab.core.config import BacktestLimits, Config
from stratlab.core.exceptions import BacktestValidationError, DataError, DataUnavailableError
from tests.unit._prices import TODAY, daily_series, dip_then_recovery


class RecordingSource:
    def __init__(self, inner) -> None:
        self.inner = inner
        self.calls: list[tuple[str, date, date]] = []

    def fetch(self, symbol, start, end):
        self.calls.append((symbol, start, end))
        return self.inner.fetch(symbol, start, end)


def _request(**overrides):
    base = {
        "strategy_kind": "rsi",
        "config": {"period": 14, "oversold": 30, "overbought": 70},
        "asset_symbol": "BTCUSDT",
        "start_date": "2023-01-01",
        "end_date": "2023-12-31",
        "initial_capital": 10_000,
    }
    base.update(overrides)
    return base


def _source(closes=None) -> MemoryPriceSource:
    return MemoryPriceSource({"BTCUSDT": daily_series(dip_then_recovery() if closes is None else closes)})


def test_rsi_dip_then_recovery_scenario():
    res = run_backtest(_request(), source=_source(), today=TODAY)

    assert isinstance(res, BacktestResult)
    assert any(t.side == "buy" for t in res.trades)
    assert res.final_balance > 0.0
    assert len(res.daily_returns) == 365
    assert res.bars == 365
    assert res.initial_balance == 10_000.0
    assert res.start_date == date(2023, 1, 1)
    assert res.end_date == date(2023, 12, 31)
    assert res.total_return == pytest.approx(res.final_balance - res.initial_balance)
    assert res.max_drawdown <= 0.0
    assert -100.0 <= res.max_drawdown_percentage <= 0.0
    assert res.trades[0].side == "buy"
    assert res.benchmark_return == pytest.approx((130.0 / 100.5 - 1.0) * 100.0)


def test_daily_returns_track_equity():
    res = run_backtest(_request(), source=_source(), today=TODAY)
    first, last = res.daily_returns[0], res.daily_returns[-1]
    assert first.date == date(2023, 1, 1)
    assert last.date == date(2023, 12, 31)
    assert last.portfolio_value == pytest.approx(res.final_balance)
    assert last.return_percentage == pytest.approx(res.total_return_percentage)
    assert all(d.portfolio_value >= 0.0 for d in res.daily_returns)


def test_identical_inputs_identical_results():
    src = _source()
    a = run_backtest(_request(), source=src, today=TODAY)
    b = run_backtest(_request(), source=src, today=TODAY)
    assert a.model_dump() == b.model_dump()


@pytest.mark.parametrize(
    "kind,config",
    [
        ("dca", {"amount_per_buy": 100, "interval_hours": 168}),
        ("grid_trading", {"grid_count": 10, "range_percentage": 30, "investment_amount": 5_000}),
        ("sma_crossover", {"fast_period": 10, "slow_period": 30}),
        ("macd", {}),
    ],
)
def test_every_strategy_runs_end_to_end(kind, config):
    res = run_backtest(_request(strategy_kind=kind, config=config), source=_source(), today=TODAY)
    assert isinstance(res, BacktestResult)
    assert res.strategy_kind == kind
    assert len(res.daily_returns) == 365
    assert res.final_balance > 0.0
    assert 0.0 <= res.win_rate <= 100.0


def test_flat_market_zero_trade_result_is_well_formed():
    res = run_backtest(_request(), source=_source(np.full(365, 100.0)), today=TODAY)
    assert res.total_trades == 0
    assert res.total_return == 0.0
    assert res.sharpe_ratio == 0.0
    assert res.max_drawdown == 0.0
    assert res.win_rate == 0.0
    assert res.volatility == 0.0


def test_stop_loss_from_config_applies():
    res = run_backtest(_request(config={"stop_loss_pct": 5}), source=_source(), today=TODAY)
    assert any(t.reason == "stop_loss" for t in res.trades)


def test_short_span_rejected_before_fetch():
    src = RecordingSource(_source())
    with pytest.raises(BacktestValidationError) as ei:
        run_backtest(_request(end_date="2023-01-11"), source=src, today=TODAY)
    assert any(i.code == "insufficient_span" for i in ei.value.issues)
    assert src.calls == []


def test_unknown_symbol_is_data_unavailable():
    with pytest.raises(DataUnavailableError):
        run_backtest(_request(asset_symbol="ETHUSDT"), source=_source(), today=TODAY)


def test_gap_in_history_is_data_error():
    full = daily_series(dip_then_recovery())
    holed = PriceSeries(symbol="BTCUSDT", bars=full.bars[:100] + full.bars[103:])
    with pytest.raises(DataError, match="missing bars"):
        run_backtest(_request(), source=MemoryPriceSource({"BTCUSDT": holed}), today=TODAY)


def test_history_not_covering_range_is_data_error():
    partial = daily_series(dip_then_recovery()[:200])
    with pytest.raises(DataError, match="does not cover"):
        run_backtest(_request(), source=MemoryPriceSource({"BTCUSDT": partial}), today=TODAY)


def test_too_many_bars_rejected():
    cfg = Config(backtest=BacktestLimits(max_bars=100))
    with pytest.raises(BacktestValidationError) as ei:
        run_backtest(_request(), source=_source(), config=cfg, today=TODAY)
    assert ei.value.issues[0].code == "too_many_bars"


def test_cancelled_run_returns_outcome():
    cancel = threading.Event()
    cancel.set()
    out = run_backtest(_request(), source=_source(), cancel=cancel, today=TODAY)
    assert isinstance(out, Cancelled)
    assert out.bars_processed == 0


def test_concurrent_runs_are_independent():
    src = _source()
    expected = run_backtest(_request(), source=src, today=TODAY).model_dump()
    results: list[dict] = []
    lock = threading.Lock()

    def worker() -> None:
        r = run_backtest(_request(), source=src, today=TODAY).model_dump()
        with lock:
            results.append(r)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 4
    assert all(r == expected for r in results)
