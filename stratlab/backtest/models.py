"""stratlab.backtest.models

IO contracts: what callers send and what they get back.

Pydantic models own the boundaries; the simulator works on slotted
dataclasses. Models here only check shape and types. Range and cross-field
rules live in `stratlab.backtest.validation`, which reports all of them at
once.
"""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StrategyKind(StrEnum):
    DCA = "dca"
    GRID_TRADING = "grid_trading"
    SMA_CROSSOVER = "sma_crossover"
    RSI = "rsi"
    MACD = "macd"


class _StrategyConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Percent from average entry price. None or 0 disables.
    stop_loss_pct: float | None = None
    take_profit_pct: float | None = None


class DCAConfig(_StrategyConfigBase):
    kind: Literal["dca"] = "dca"
    amount_per_buy: float = 100.0
    interval_hours: float = 24.0


class GridTradingConfig(_StrategyConfigBase):
    kind: Literal["grid_trading"] = "grid_trading"
    grid_count: int = 10
    range_percentage: float = 10.0
    investment_amount: float = 1000.0


class SMACrossoverConfig(_StrategyConfigBase):
    kind: Literal["sma_crossover"] = "sma_crossover"
    fast_period: int = 10
    slow_period: int = 30
    position_size_pct: float = 100.0


class RSIConfig(_StrategyConfigBase):
    kind: Literal["rsi"] = "rsi"
    period: int = 14
    oversold: float = 30.0
    overbought: float = 70.0
    position_size_pct: float = 100.0


class MACDConfig(_StrategyConfigBase):
    kind: Literal["macd"] = "macd"
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9
    position_size_pct: float = 100.0


StrategyConfig = Annotated[
    DCAConfig | GridTradingConfig | SMACrossoverConfig | RSIConfig | MACDConfig,
    Field(discriminator="kind"),
]

CONFIG_TYPES: dict[StrategyKind, type[_StrategyConfigBase]] = {
    StrategyKind.DCA: DCAConfig,
    StrategyKind.GRID_TRADING: GridTradingConfig,
    StrategyKind.SMA_CROSSOVER: SMACrossoverConfig,
    StrategyKind.RSI: RSIConfig,
    StrategyKind.MACD: MACDConfig,
}


class BacktestRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy_kind: StrategyKind
    config: StrategyConfig
    asset_symbol: str
    start_date: dt.date
    end_date: dt.date
    initial_capital: float

    @model_validator(mode="before")
    @classmethod
    def _tag_config(cls, data: Any) -> Any:
        # Wire payloads carry the tag beside the config, not inside it.
        if not isinstance(data, dict):
            return data
        kind = data.get("strategy_kind")
        cfg = data.get("config")
        if cfg is None:
            cfg = {}
        if isinstance(cfg, dict) and "kind" not in cfg and kind is not None:
            data = {**data, "config": {**cfg, "kind": str(kind)}}
        return data


class DailyReturn(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    portfolio_value: float
    # Relative to initial capital, in percent.
    return_percentage: float


class TradeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: dt.datetime
    side: Literal["buy", "sell"]
    price: float
    quantity: float
    notional: float
    cash_after: float
    position_after: float
    reason: str
    realized_pnl: float | None = None


class BacktestResult(BaseModel):
    """Produced once per run. Percent fields are x100."""

    model_config = ConfigDict(frozen=True)

    strategy_kind: StrategyKind
    asset_symbol: str

    total_return: float
    total_return_percentage: float
    sharpe_ratio: float
    max_drawdown: float
    max_drawdown_percentage: float
    total_trades: int
    win_rate: float
    final_balance: float
    initial_balance: float
    volatility: float
    start_date: dt.date
    end_date: dt.date
    daily_returns: list[DailyReturn]

    winning_trades: int = 0
    losing_trades: int = 0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float | None = None
    annualized_return: float | None = None
    benchmark_return: float | None = None
    total_invested: float = 0.0
    skipped_orders: int = 0
    bars: int = 0
    trades: list[TradeRecord] = Field(default_factory=list)
