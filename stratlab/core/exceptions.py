"""stratlab.core.exceptions

Errors are part of the interface.

Bad input, bad data and a caller walking away are three different things.
Keep them apart.
"""

from __future__ import annotations

from dataclasses import dataclass


class StratlabError(Exception):
    """Base exception for stratlab."""


class ConfigError(StratlabError):
    """Configuration is missing, invalid, or inconsistent."""


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    field: str
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "code": self.code, "message": self.message}


class BacktestValidationError(StratlabError):
    """Request rejected before simulation. Carries every violation, not the first one."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        summary = "; ".join(f"{i.field}: {i.message}" for i in self.issues) or "invalid request"
        super().__init__(summary)


class DataError(StratlabError):
    """Price history is malformed for the requested range."""


class DataUnavailableError(DataError):
    """The price source has nothing for the requested range."""


class BacktestCancelled(StratlabError):
    """Run aborted between bars because the caller asked for it."""

    def __init__(self, bars_processed: int) -> None:
        self.bars_processed = int(bars_processed)
        super().__init__(f"backtest cancelled after {self.bars_processed} bars")
