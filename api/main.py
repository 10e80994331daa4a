from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.errors import ApiError, api_error_handler
from api.routes import get_api_router, health
from stratlab import __version__
from stratlab.core.config import Config


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Same envelope as backtest validation failures.
    issues = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body",
            "code": str(err.get("type", "invalid")),
            "message": str(err.get("msg", "")),
        }
        for err in exc.errors()
    ]
    body = {"error": {"code": "validation.failed", "message": "Request body is invalid", "issues": issues}}
    return JSONResponse(status_code=422, content=body)


def create_app(config: Config | None = None) -> FastAPI:
    start = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.started_at = start
        # Tests may inject config / price_source before startup.
        app.state.config = getattr(app.state, "config", None) or config or Config.load()
        yield

    openapi_tags = [
        {"name": "health", "description": "Liveness and version metadata."},
        {"name": "strategies", "description": "Strategy kinds, defaults and parameter bounds."},
        {"name": "backtests", "description": "Run a backtest and return its metrics."},
    ]

    app = FastAPI(
        title="stratlab API",
        description="Strategy backtests over historical crypto prices",
        version=__version__,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.started_at = start
    if config is not None:
        app.state.config = config

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(get_api_router(), prefix="/api/v1")
    return app


# Module-level app for uvicorn (e.g. `uvicorn api.main:app`).
app = create_app()
