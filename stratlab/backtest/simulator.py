"""stratlab.backtest.simulator

Single-asset, bar-by-bar backtest simulator.

Intentionally minimal but correct:
- long-only, spot; full lots at the bar close (no partial fills, no slippage)
- stop-loss / take-profit are checked before the strategy each bar
- a BUY the cash cannot cover is skipped and recorded, never forced
- open positions at the end are marked to market, not liquidated

Phases: WARMING_UP -> ACTIVE -> CLOSED. Signals are only acted on in ACTIVE.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

import numpy as np

from stratlab.backtest.io import PricePoint, PriceSeries
from stratlab.backtest.strategies.base import Signal, Strategy
from stratlab.core.exceptions import BacktestCancelled

logger = logging.getLogger(__name__)


class Phase(StrEnum):
    WARMING_UP = "warming_up"
    ACTIVE = "active"
    CLOSED = "closed"


class Side(StrEnum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True, slots=True)
class RiskRules:
    """Percent from average entry price. None or 0 disables."""

    stop_loss_pct: float | None = None
    take_profit_pct: float | None = None


@dataclass(slots=True)
class PortfolioState:
    """Ledger for one run. Never shared."""

    cash: float
    quantity: float = 0.0
    avg_entry_price: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    total_invested: float = 0.0

    @property
    def has_position(self) -> bool:
        return self.quantity > 0.0

    def value(self, price: float) -> float:
        return self.cash + self.quantity * price

    def mark(self, price: float) -> None:
        self.unrealized_pnl = (price - self.avg_entry_price) * self.quantity if self.has_position else 0.0


@dataclass(frozen=True, slots=True)
class Trade:
    timestamp: datetime
    side: Side
    price: float
    quantity: float
    notional: float
    cash_after: float
    position_after: float
    reason: str
    realized_pnl: float | None = None  # sells only


@dataclass(frozen=True, slots=True)
class SkippedOrder:
    timestamp: datetime
    side: Side
    requested_notional: float
    available_cash: float
    reason: str


@dataclass(frozen=True, slots=True)
class SimResult:
    timestamps: tuple[datetime, ...]
    equity: np.ndarray  # (T,) mark-to-market value per bar
    closes: np.ndarray  # (T,)
    trades: tuple[Trade, ...]
    skipped: tuple[SkippedOrder, ...]
    final: PortfolioState
    phase: Phase
    first_active_bar: int | None = None


@dataclass(slots=True)
class _RunState:
    portfolio: PortfolioState
    trades: list[Trade] = field(default_factory=list)
    skipped: list[SkippedOrder] = field(default_factory=list)
    equity: list[float] = field(default_factory=list)
    phase: Phase = Phase.WARMING_UP
    first_active_bar: int | None = None


class Simulator:
    """One instance per run. ``run`` may be called once."""

    def __init__(self, *, strategy: Strategy, initial_capital: float, risk: RiskRules | None = None) -> None:
        if initial_capital <= 0.0:
            raise ValueError("initial_capital must be > 0")
        self.strategy = strategy
        self.initial_capital = float(initial_capital)
        self.risk = risk or RiskRules()
        self._state: _RunState | None = None

    @property
    def phase(self) -> Phase:
        return self._state.phase if self._state is not None else Phase.WARMING_UP

    def run(self, series: PriceSeries, *, cancel: threading.Event | None = None) -> SimResult:
        if self._state is not None:
            raise RuntimeError("Simulator instances are single-use")
        st = _RunState(portfolio=PortfolioState(cash=self.initial_capital))
        self._state = st

        for i, bar in enumerate(series.bars):
            if cancel is not None and cancel.is_set():
                # Partial ledger is dropped with this instance.
                raise BacktestCancelled(bars_processed=i)
            self._step(st, i, bar)

        st.phase = Phase.CLOSED
        if series.bars:
            st.portfolio.mark(series.bars[-1].close)

        return SimResult(
            timestamps=series.timestamps,
            equity=np.array(st.equity, dtype=np.float64),
            closes=series.closes,
            trades=tuple(st.trades),
            skipped=tuple(st.skipped),
            final=PortfolioState(
                cash=st.portfolio.cash,
                quantity=st.portfolio.quantity,
                avg_entry_price=st.portfolio.avg_entry_price,
                realized_pnl=st.portfolio.realized_pnl,
                unrealized_pnl=st.portfolio.unrealized_pnl,
                total_invested=st.portfolio.total_invested,
            ),
            phase=st.phase,
            first_active_bar=st.first_active_bar,
        )

    def _step(self, st: _RunState, i: int, bar: PricePoint) -> None:
        pf = st.portfolio

        forced = self._exit_reason(pf, bar)
        if forced is not None:
            self._sell(st, bar, reason=forced)

        # The strategy sees every bar, acted on or not.
        signal = self.strategy.next_signal(bar)
        if st.phase is Phase.WARMING_UP and self.strategy.is_warm:
            st.phase = Phase.ACTIVE
            st.first_active_bar = i

        if forced is None and st.phase is Phase.ACTIVE:
            if signal is Signal.BUY:
                self._buy(st, bar)
            elif signal is Signal.SELL and pf.has_position:
                self._sell(st, bar, reason="strategy_signal")

        pf.mark(bar.close)
        st.equity.append(pf.value(bar.close))

    def _exit_reason(self, pf: PortfolioState, bar: PricePoint) -> str | None:
        if not pf.has_position:
            return None
        entry = pf.avg_entry_price
        sl = self.risk.stop_loss_pct
        tp = self.risk.take_profit_pct
        # Stop-loss first: when a bar spans both thresholds assume the worse outcome.
        if sl and bar.low <= entry * (1.0 - sl / 100.0):
            return "stop_loss"
        if tp and bar.high >= entry * (1.0 + tp / 100.0):
            return "take_profit"
        return None

    def _buy(self, st: _RunState, bar: PricePoint) -> None:
        pf = st.portfolio
        if pf.has_position and not self.strategy.accumulates:
            return

        notional = float(self.strategy.order_notional(pf.cash))
        if notional <= 0.0 or notional > pf.cash:
            st.skipped.append(
                SkippedOrder(
                    timestamp=bar.timestamp,
                    side=Side.BUY,
                    requested_notional=notional,
                    available_cash=pf.cash,
                    reason="insufficient_cash",
                )
            )
            logger.debug(
                "order_skipped_insufficient_cash",
                extra={"ts": bar.timestamp.isoformat(), "requested": notional, "cash": pf.cash},
            )
            return

        price = bar.close
        qty = notional / price
        new_qty = pf.quantity + qty
        pf.avg_entry_price = (pf.avg_entry_price * pf.quantity + price * qty) / new_qty
        pf.quantity = new_qty
        pf.cash -= notional
        pf.total_invested += notional

        st.trades.append(
            Trade(
                timestamp=bar.timestamp,
                side=Side.BUY,
                price=price,
                quantity=qty,
                notional=notional,
                cash_after=pf.cash,
                position_after=pf.quantity,
                reason="strategy_signal",
            )
        )

    def _sell(self, st: _RunState, bar: PricePoint, *, reason: str) -> None:
        pf = st.portfolio
        if not pf.has_position:
            return

        price = bar.close
        qty = pf.quantity
        proceeds = qty * price
        pnl = (price - pf.avg_entry_price) * qty

        pf.cash += proceeds
        pf.realized_pnl += pnl
        pf.quantity = 0.0
        pf.avg_entry_price = 0.0

        st.trades.append(
            Trade(
                timestamp=bar.timestamp,
                side=Side.SELL,
                price=price,
                quantity=qty,
                notional=proceeds,
                cash_after=pf.cash,
                position_after=0.0,
                reason=reason,
                realized_pnl=pnl,
            )
        )
