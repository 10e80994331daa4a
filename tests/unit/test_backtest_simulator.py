from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import numpy as np
import pytest

from stratlab.backtest.io import PricePoint, PriceSeries
from stratlab.backtest.models import DCAConfig, RSIConfig, StrategyKind
from stratlab.backtest.simulator import Phase, RiskRules, Side, Simulator
from stratlab.backtest.strategies import build_strategy
from stratlab.backtest.strategies.base import Signal, Strategy
from stratlab.core.exceptions import BacktestCancelled

T0 = datetime(2023, 1, 1, tzinfo=UTC)


class Scripted(Strategy):
    """Replays a fixed signal list. Spends ``notional`` per buy (all cash when None)."""

    kind = StrategyKind.RSI

    def __init__(self, signals: str, *, warmup: int = 1, notional: float | None = None, accumulates: bool = False):
        super().__init__()
        self.script = [{"B": Signal.BUY, "S": Signal.SELL, ".": Signal.HOLD}[c] for c in signals]
        self._warmup = warmup
        self.notional = notional
        self.accumulates = accumulates
        self.seen: list[float] = []

    @property
    def warmup_bars(self) -> int:
        return self._warmup

    def _on_bar(self, bar: PricePoint) -> Signal:
        self.seen.append(bar.close)
        return self.script[self.bars_seen - 1]

    def order_notional(self, cash: float) -> float:
        return cash if self.notional is None else self.notional


def _series(closes) -> PriceSeries:
    return PriceSeries.from_closes("BTCUSDT", closes, start=T0)


def _bars(rows) -> PriceSeries:
    """rows of (open, high, low, close)."""

    return PriceSeries(
        symbol="BTCUSDT",
        bars=tuple(PricePoint(T0 + timedelta(days=i), o, h, lo, c) for i, (o, h, lo, c) in enumerate(rows)),
    )


def test_no_signals_keeps_cash_flat():
    res = Simulator(strategy=Scripted("....."), initial_capital=1_000).run(_series([100, 90, 120, 80, 110]))
    assert res.trades == ()
    np.testing.assert_allclose(res.equity, 1_000.0)
    assert res.phase is Phase.CLOSED


def test_buy_then_sell_realizes_pnl():
    res = Simulator(strategy=Scripted(".B.S."), initial_capital=1_000).run(_series([100, 100, 110, 120, 130]))

    buy, sell = res.trades
    assert buy.side is Side.BUY and sell.side is Side.SELL
    assert buy.quantity == pytest.approx(10.0)
    assert buy.cash_after == pytest.approx(0.0)
    assert sell.realized_pnl == pytest.approx(200.0)
    assert sell.reason == "strategy_signal"
    assert res.final.cash == pytest.approx(1_200.0)
    assert float(res.equity[-1]) == pytest.approx(1_200.0)


def test_equity_marks_open_position_each_bar():
    res = Simulator(strategy=Scripted("B...."), initial_capital=1_000).run(_series([100, 110, 90, 100, 150]))
    np.testing.assert_allclose(res.equity, [1_000, 1_100, 900, 1_000, 1_500])


def test_open_position_marked_not_liquidated_at_end():
    res = Simulator(strategy=Scripted("B.."), initial_capital=1_000).run(_series([100, 120, 130]))
    assert len(res.trades) == 1
    assert res.final.quantity == pytest.approx(10.0)
    assert res.final.unrealized_pnl == pytest.approx(300.0)
    assert float(res.equity[-1]) == pytest.approx(1_300.0)


def test_signals_ignored_while_warming_up():
    strat = Scripted("BB.S", warmup=3)
    sim = Simulator(strategy=strat, initial_capital=1_000)
    res = sim.run(_series([100, 100, 100, 100]))
    assert res.trades == ()
    assert res.first_active_bar == 2
    # every bar still reaches the strategy
    assert strat.seen == [100, 100, 100, 100]


def test_sell_without_position_is_noop():
    res = Simulator(strategy=Scripted("S.S"), initial_capital=1_000).run(_series([100, 100, 100]))
    assert res.trades == ()


def test_non_accumulating_strategy_ignores_second_buy():
    res = Simulator(strategy=Scripted("BB", notional=100), initial_capital=1_000).run(_series([100, 100]))
    assert len(res.trades) == 1


def test_accumulating_buys_average_entry():
    strat = Scripted("BB", notional=100, accumulates=True)
    res = Simulator(strategy=strat, initial_capital=1_000).run(_series([100, 50]))
    assert len(res.trades) == 2
    assert res.final.quantity == pytest.approx(3.0)
    assert res.final.avg_entry_price == pytest.approx(200.0 / 3.0)
    assert res.final.total_invested == pytest.approx(200.0)


def test_buy_beyond_cash_is_skipped_and_recorded():
    strat = Scripted("BBB", notional=400, accumulates=True)
    res = Simulator(strategy=strat, initial_capital=1_000).run(_series([100, 100, 100]))
    assert len(res.trades) == 2
    assert len(res.skipped) == 1
    sk = res.skipped[0]
    assert sk.reason == "insufficient_cash"
    assert sk.requested_notional == pytest.approx(400.0)
    assert sk.available_cash == pytest.approx(200.0)
    assert res.final.cash == pytest.approx(200.0)


def test_dca_runs_out_of_cash_without_going_negative():
    strat = build_strategy(DCAConfig(amount_per_buy=300, interval_hours=24))
    res = Simulator(strategy=strat, initial_capital=1_000).run(_series(np.linspace(100, 50, 10)))
    assert len(res.trades) == 3
    assert len(res.skipped) == 7
    assert res.final.cash >= 0.0
    assert (res.equity >= 0.0).all()


def test_stop_loss_fires_before_strategy():
    rows = [(100, 100, 100, 100), (100, 101, 89, 95), (95, 96, 94, 95)]
    strat = Scripted("B..")
    res = Simulator(strategy=strat, initial_capital=1_000, risk=RiskRules(stop_loss_pct=10)).run(_bars(rows))

    assert [t.reason for t in res.trades] == ["strategy_signal", "stop_loss"]
    assert res.trades[1].price == 95.0
    assert res.trades[1].realized_pnl == pytest.approx(-50.0)
    assert not res.final.quantity


def test_take_profit():
    rows = [(100, 100, 100, 100), (100, 121, 100, 118)]
    res = Simulator(strategy=Scripted("B."), initial_capital=1_000, risk=RiskRules(take_profit_pct=20)).run(_bars(rows))
    assert res.trades[-1].reason == "take_profit"
    assert res.trades[-1].realized_pnl == pytest.approx(180.0)


def test_stop_loss_wins_when_bar_spans_both():
    rows = [(100, 100, 100, 100), (100, 130, 80, 100)]
    risk = RiskRules(stop_loss_pct=10, take_profit_pct=20)
    res = Simulator(strategy=Scripted("B."), initial_capital=1_000, risk=risk).run(_bars(rows))
    assert res.trades[-1].reason == "stop_loss"


def test_signal_ignored_on_forced_exit_bar():
    rows = [(100, 100, 100, 100), (100, 100, 80, 85), (85, 85, 85, 85)]
    res = Simulator(strategy=Scripted("BB."), initial_capital=1_000, risk=RiskRules(stop_loss_pct=10)).run(_bars(rows))
    assert [t.side for t in res.trades] == [Side.BUY, Side.SELL]


def test_zero_risk_values_disable_exits():
    rows = [(100, 100, 100, 100), (100, 300, 10, 100)]
    risk = RiskRules(stop_loss_pct=0, take_profit_pct=0)
    res = Simulator(strategy=Scripted("B."), initial_capital=1_000, risk=risk).run(_bars(rows))
    assert len(res.trades) == 1


def test_cancel_between_bars():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(BacktestCancelled) as ei:
        Simulator(strategy=Scripted("..."), initial_capital=1_000).run(_series([1, 2, 3]), cancel=cancel)
    assert ei.value.bars_processed == 0


def test_simulator_is_single_use():
    sim = Simulator(strategy=Scripted("."), initial_capital=1_000)
    sim.run(_series([100]))
    with pytest.raises(RuntimeError):
        sim.run(_series([100]))


def test_invalid_capital():
    with pytest.raises(ValueError):
        Simulator(strategy=Scripted("."), initial_capital=0)


def test_same_inputs_same_ledger():
    closes = 100.0 + 10.0 * np.sin(np.arange(200) / 7.0)
    runs = [
        Simulator(strategy=build_strategy(RSIConfig(period=5)), initial_capital=5_000).run(_series(closes))
        for _ in range(2)
    ]
    assert runs[0].trades == runs[1].trades
    np.testing.assert_array_equal(runs[0].equity, runs[1].equity)
