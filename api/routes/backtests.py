from __future__ import annotations

import threading
from typing import Any

from fastapi import APIRouter, Body, Depends

from api.deps import get_config, get_price_source
from api.errors import ApiError
from api.schemas import error_responses
from stratlab.backtest.engine import Cancelled, run_backtest
from stratlab.backtest.io import PriceSource
from stratlab.backtest.models import BacktestResult
from stratlab.core.config import Config
from stratlab.core.exceptions import BacktestValidationError, DataError

router = APIRouter(prefix="/backtests")


# Sync handler: FastAPI runs it on a worker thread, so concurrent runs don't block the loop.
@router.post("", response_model=BacktestResult, responses=error_responses(422, 424, 504))
def create_backtest(
    payload: dict[str, Any] = Body(...),
    config: Config = Depends(get_config),
    source: PriceSource = Depends(get_price_source),
) -> BacktestResult:
    cancel = threading.Event()
    timer = threading.Timer(float(config.api.backtest_timeout_seconds), cancel.set)
    timer.daemon = True
    timer.start()
    try:
        outcome = run_backtest(payload, source=source, config=config, cancel=cancel)
    except BacktestValidationError as e:
        raise ApiError.from_validation(e) from e
    except DataError as e:
        raise ApiError.from_data(e) from e
    finally:
        timer.cancel()

    if isinstance(outcome, Cancelled):
        raise ApiError(
            "backtest.cancelled",
            f"Backtest exceeded {config.api.backtest_timeout_seconds:g}s and was cancelled",
            status=504,
            bars_processed=outcome.bars_processed,
        )
    return outcome
