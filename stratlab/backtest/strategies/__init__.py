"""stratlab.backtest.strategies

Strategy library.

One class per strategy kind, looked up by the config's tag. Adding a kind
means adding a class here, not another branch in the simulator.
"""

from __future__ import annotations

from stratlab.backtest.models import StrategyConfig, StrategyKind
from stratlab.backtest.strategies.base import Signal, Strategy
from stratlab.backtest.strategies.dca import DCAStrategy
from stratlab.backtest.strategies.grid import GridTradingStrategy
from stratlab.backtest.strategies.macd import MACDStrategy
from stratlab.backtest.strategies.rsi import RSIStrategy
from stratlab.backtest.strategies.sma_crossover import SMACrossoverStrategy

REGISTRY: dict[StrategyKind, type[Strategy]] = {
    StrategyKind.DCA: DCAStrategy,
    StrategyKind.GRID_TRADING: GridTradingStrategy,
    StrategyKind.SMA_CROSSOVER: SMACrossoverStrategy,
    StrategyKind.RSI: RSIStrategy,
    StrategyKind.MACD: MACDStrategy,
}


def build_strategy(config: StrategyConfig) -> Strategy:
    """Fresh strategy instance (fresh indicator state) for one run."""

    cls = REGISTRY.get(StrategyKind(config.kind))
    if cls is None:
        raise ValueError(f"Unknown strategy kind: {config.kind}")
    return cls(config)  # type: ignore[call-arg]


__all__ = [
    "REGISTRY",
    "DCAStrategy",
    "GridTradingStrategy",
    "MACDStrategy",
    "RSIStrategy",
    "SMACrossoverStrategy",
    "Signal",
    "Strategy",
    "build_strategy",
]
