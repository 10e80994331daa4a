"""stratlab.backtest.engine

Backtest entry point.

One call runs the whole pipeline:
- validate the request (nothing else happens if that fails)
- fetch and check the price history for the requested range
- build a fresh strategy and simulate bar by bar
- compute metrics and assemble the result

Runs share nothing mutable; concurrent calls are independent.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from stratlab.backtest.io import PriceSource, check_series
from stratlab.backtest.metrics import compute_metrics
from stratlab.backtest.models import BacktestRequest, BacktestResult
from stratlab.backtest.report import build_report
from stratlab.backtest.simulator import RiskRules, Simulator
from stratlab.backtest.strategies import build_strategy
from stratlab.backtest.validation import ensure_valid
from stratlab.core.config import Config
from stratlab.core.exceptions import BacktestCancelled, BacktestValidationError, ValidationIssue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Cancelled:
    """A run that was stopped before completion. No partial metrics."""

    bars_processed: int
    reason: str = "cancelled"


RunOutcome = BacktestResult | Cancelled


def run_backtest(
    request: BacktestRequest | Mapping[str, Any],
    *,
    source: PriceSource,
    config: Config | None = None,
    cancel: threading.Event | None = None,
    today: date | None = None,
) -> RunOutcome:
    """Validate, fetch, simulate and report.

    Raises:
      BacktestValidationError: the request breaks a rule (no data is fetched)
      DataError: the history is missing or malformed for the range
    """

    cfg = config or Config()
    validated = ensure_valid(request, limits=cfg.backtest, today=today)
    req = validated.request

    t0 = time.perf_counter()
    logger.info(
        "backtest_started",
        extra={
            "strategy": str(req.strategy_kind),
            "symbol": req.asset_symbol,
            "start": req.start_date.isoformat(),
            "end": req.end_date.isoformat(),
            "capital": req.initial_capital,
        },
    )

    series = source.fetch(req.asset_symbol, req.start_date, req.end_date).between(req.start_date, req.end_date)
    check_series(series, start=req.start_date, end=req.end_date)
    if len(series) > cfg.backtest.max_bars:
        raise BacktestValidationError(
            [
                ValidationIssue(
                    field="end_date",
                    code="too_many_bars",
                    message=f"Range holds {len(series)} bars; at most {cfg.backtest.max_bars} allowed",
                )
            ]
        )

    sim = Simulator(
        strategy=build_strategy(req.config),
        initial_capital=req.initial_capital,
        risk=RiskRules(stop_loss_pct=req.config.stop_loss_pct, take_profit_pct=req.config.take_profit_pct),
    )
    try:
        res = sim.run(series, cancel=cancel)
    except BacktestCancelled as e:
        logger.warning(
            "backtest_cancelled",
            extra={"symbol": req.asset_symbol, "bars_processed": e.bars_processed, "bars_total": len(series)},
        )
        return Cancelled(bars_processed=e.bars_processed)

    metrics = compute_metrics(
        equity=res.equity,
        timestamps=res.timestamps,
        trades=res.trades,
        initial_capital=req.initial_capital,
        closes=res.closes,
        span_days=float(validated.span_days),
        risk_free_rate=cfg.metrics.risk_free_rate,
        default_periods_per_year=cfg.metrics.periods_per_year,
    )
    result = build_report(validated, res, metrics)

    logger.info(
        "backtest_completed",
        extra={
            "strategy": str(req.strategy_kind),
            "symbol": req.asset_symbol,
            "bars": result.bars,
            "trades": result.total_trades,
            "skipped": result.skipped_orders,
            "total_return_pct": round(result.total_return_percentage, 4),
            "elapsed_ms": round((time.perf_counter() - t0) * 1000.0, 1),
        },
    )
    return result
