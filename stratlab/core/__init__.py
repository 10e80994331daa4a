"""stratlab.core

Core primitives.

If a module needs to exist, it should probably depend only on this package.
"""

from .config import Config
from .exceptions import (
    BacktestCancelled,
    BacktestValidationError,
    ConfigError,
    DataError,
    DataUnavailableError,
    StratlabError,
    ValidationIssue,
)
from .time import parse_dt, utc_now, utc_today

__all__ = [
    "BacktestCancelled",
    "BacktestValidationError",
    "Config",
    "ConfigError",
    "DataError",
    "DataUnavailableError",
    "StratlabError",
    "ValidationIssue",
    "parse_dt",
    "utc_now",
    "utc_today",
]
