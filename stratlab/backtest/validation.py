"""stratlab.backtest.validation

Request validation.

Runs before any price data is touched. Every rule is checked and every
violation is reported together.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

import pydantic

from stratlab.backtest.models import (
    CONFIG_TYPES,
    BacktestRequest,
    DCAConfig,
    GridTradingConfig,
    MACDConfig,
    RSIConfig,
    SMACrossoverConfig,
    StrategyKind,
)
from stratlab.core.config import BacktestLimits
from stratlab.core.exceptions import BacktestValidationError, ValidationIssue
from stratlab.core.time import utc_today

_SYMBOL_RE = re.compile(r"[A-Z0-9]+")


@dataclass(frozen=True, slots=True)
class Bound:
    lo: float | None = None
    hi: float | None = None
    lo_exclusive: bool = False

    def contains(self, v: float) -> bool:
        if not math.isfinite(v):
            return False
        if self.lo is not None and (v <= self.lo if self.lo_exclusive else v < self.lo):
            return False
        return not (self.hi is not None and v > self.hi)

    def describe(self) -> str:
        if self.lo is not None and self.hi is not None:
            if self.lo_exclusive:
                return f"greater than {self.lo:g} and at most {self.hi:g}"
            return f"between {self.lo:g} and {self.hi:g}"
        if self.lo is not None:
            return f"greater than {self.lo:g}" if self.lo_exclusive else f"at least {self.lo:g}"
        if self.hi is not None:
            return f"at most {self.hi:g}"
        return "any value"

    def to_dict(self) -> dict[str, Any]:
        return {"min": self.lo, "max": self.hi, "min_exclusive": self.lo_exclusive}


_POSITION_SIZE = Bound(0.0, 100.0, lo_exclusive=True)

PARAMETER_BOUNDS: dict[StrategyKind, dict[str, Bound]] = {
    StrategyKind.RSI: {
        "period": Bound(5, 50),
        "oversold": Bound(10, 40),
        "overbought": Bound(60, 90),
        "position_size_pct": _POSITION_SIZE,
    },
    StrategyKind.SMA_CROSSOVER: {
        "fast_period": Bound(1, 100),
        "slow_period": Bound(2, 200),
        "position_size_pct": _POSITION_SIZE,
    },
    StrategyKind.MACD: {
        "fast_period": Bound(5, 50),
        "slow_period": Bound(10, 100),
        "signal_period": Bound(3, 30),
        "position_size_pct": _POSITION_SIZE,
    },
    StrategyKind.DCA: {
        "amount_per_buy": Bound(0.0, lo_exclusive=True),
        "interval_hours": Bound(1, 168),
    },
    StrategyKind.GRID_TRADING: {
        "grid_count": Bound(3, 50),
        "range_percentage": Bound(0.0, 50.0, lo_exclusive=True),
        "investment_amount": Bound(0.0, lo_exclusive=True),
    },
}

# Optional on every strategy; checked only when set.
RISK_BOUNDS: dict[str, Bound] = {
    "stop_loss_pct": Bound(0, 50),
    "take_profit_pct": Bound(0, 1000),
}


@dataclass(frozen=True, slots=True)
class ValidatedRequest:
    """A request that passed every rule. Only these reach the simulator."""

    request: BacktestRequest
    span_days: int


def _issue(field: str, code: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, code=code, message=message)


def parse_request(payload: Mapping[str, Any] | BacktestRequest) -> BacktestRequest:
    """Coerce a raw payload into a request; type errors become validation issues."""

    if isinstance(payload, BacktestRequest):
        return payload
    try:
        return BacktestRequest.model_validate(dict(payload))
    except pydantic.ValidationError as e:
        kinds = {k.value for k in StrategyKind}
        issues: list[ValidationIssue] = []
        for err in e.errors():
            loc = [str(p) for p in err.get("loc", ())]
            # Discriminated unions put the tag in the path: config.rsi.period -> config.period
            if len(loc) > 1 and loc[0] == "config" and loc[1] in kinds:
                loc = [loc[0], *loc[2:]]
            issues.append(_issue(".".join(loc) or "request", str(err.get("type", "invalid")), str(err.get("msg", ""))))
        raise BacktestValidationError(issues) from e


def _check_bounds(prefix: str, values: Mapping[str, Any], bounds: Mapping[str, Bound]) -> list[ValidationIssue]:
    out: list[ValidationIssue] = []
    for name, bound in bounds.items():
        v = values.get(name)
        if v is None:
            continue
        if not bound.contains(float(v)):
            out.append(_issue(f"{prefix}.{name}", "out_of_range", f"{name} must be {bound.describe()} (got {v:g})"))
    return out


def _strategy_issues(req: BacktestRequest) -> list[ValidationIssue]:
    cfg = req.config
    issues: list[ValidationIssue] = []

    if str(cfg.kind) != str(req.strategy_kind):
        issues.append(
            _issue("config.kind", "kind_mismatch", f"config is for '{cfg.kind}' but strategy_kind is '{req.strategy_kind}'")
        )
        return issues

    values = cfg.model_dump()
    issues += _check_bounds("config", values, PARAMETER_BOUNDS[req.strategy_kind])
    issues += _check_bounds("config", values, RISK_BOUNDS)

    if isinstance(cfg, RSIConfig) and not cfg.oversold < cfg.overbought:
        issues.append(
            _issue(
                "config.oversold",
                "threshold_order",
                f"oversold ({cfg.oversold:g}) must be less than overbought ({cfg.overbought:g})",
            )
        )
    if isinstance(cfg, SMACrossoverConfig | MACDConfig) and not cfg.fast_period < cfg.slow_period:
        issues.append(
            _issue(
                "config.fast_period",
                "period_order",
                f"fast_period ({cfg.fast_period}) must be less than slow_period ({cfg.slow_period})",
            )
        )
    if isinstance(cfg, DCAConfig) and cfg.amount_per_buy > req.initial_capital:
        issues.append(
            _issue("config.amount_per_buy", "exceeds_capital", "amount_per_buy cannot exceed initial_capital")
        )
    if isinstance(cfg, GridTradingConfig) and cfg.investment_amount > req.initial_capital:
        issues.append(
            _issue("config.investment_amount", "exceeds_capital", "investment_amount cannot exceed initial_capital")
        )
    return issues


def validate_request(
    req: BacktestRequest,
    *,
    limits: BacktestLimits | None = None,
    today: date | None = None,
) -> list[ValidationIssue]:
    """Return every rule violation; empty list means valid. No side effects."""

    limits = limits or BacktestLimits()
    today = today or utc_today()
    issues: list[ValidationIssue] = []

    if not req.asset_symbol:
        issues.append(_issue("asset_symbol", "required", "asset_symbol cannot be empty"))
    elif not _SYMBOL_RE.fullmatch(req.asset_symbol):
        issues.append(_issue("asset_symbol", "symbol_format", "asset_symbol must be uppercase letters/digits (e.g. BTCUSDT)"))

    if req.start_date >= req.end_date:
        issues.append(_issue("start_date", "date_order", "start_date must be before end_date"))
    if req.end_date > today:
        issues.append(_issue("end_date", "future_date", f"end_date cannot be in the future (today is {today.isoformat()})"))

    span = (req.end_date - req.start_date).days
    if span < limits.min_span_days:
        issues.append(
            _issue(
                "end_date",
                "insufficient_span",
                f"Backtest period must be at least {limits.min_span_days} days (got {span})",
            )
        )

    cap = float(req.initial_capital)
    if not limits.min_initial_capital <= cap <= limits.max_initial_capital:
        issues.append(
            _issue(
                "initial_capital",
                "capital_range",
                f"initial_capital must be between {limits.min_initial_capital:g} and {limits.max_initial_capital:g}",
            )
        )

    issues += _strategy_issues(req)
    return issues


def ensure_valid(
    req: BacktestRequest | Mapping[str, Any],
    *,
    limits: BacktestLimits | None = None,
    today: date | None = None,
) -> ValidatedRequest:
    request = parse_request(req)
    issues = validate_request(request, limits=limits, today=today)
    if issues:
        raise BacktestValidationError(issues)
    return ValidatedRequest(request=request, span_days=(request.end_date - request.start_date).days)


def strategy_catalog() -> list[dict[str, Any]]:
    """Every strategy kind with its default config and the bounds enforced above."""

    out: list[dict[str, Any]] = []
    for kind, cls in CONFIG_TYPES.items():
        bounds = {**PARAMETER_BOUNDS[kind], **RISK_BOUNDS}
        out.append(
            {
                "kind": kind.value,
                "defaults": cls().model_dump(exclude={"kind"}),
                "bounds": {name: b.to_dict() for name, b in bounds.items()},
            }
        )
    return out
