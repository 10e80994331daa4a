from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from stratlab.core.exceptions import BacktestValidationError, DataError, DataUnavailableError


class ApiError(Exception):
    def __init__(self, code: str, message: str, status: int = 400, **extra: object) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.extra = extra

    @classmethod
    def from_validation(cls, exc: BacktestValidationError) -> ApiError:
        return cls(
            "validation.failed",
            "Backtest request is invalid",
            status=422,
            issues=[i.to_dict() for i in exc.issues],
        )

    @classmethod
    def from_data(cls, exc: DataError) -> ApiError:
        code = "data.unavailable" if isinstance(exc, DataUnavailableError) else "data.invalid"
        return cls(code, str(exc), status=424)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    body = {"error": {"code": exc.code, "message": exc.message, **exc.extra}}
    return JSONResponse(status_code=exc.status, content=body)
