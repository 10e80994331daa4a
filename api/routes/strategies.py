from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from stratlab.backtest.validation import strategy_catalog

router = APIRouter(prefix="/strategies")


class StrategyInfo(BaseModel):
    kind: str
    defaults: dict[str, Any]
    bounds: dict[str, dict[str, Any]]


@router.get("", response_model=list[StrategyInfo])
def list_strategies() -> list[StrategyInfo]:
    return [StrategyInfo(**item) for item in strategy_catalog()]
