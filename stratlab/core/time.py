"""stratlab.core.time

The only time helper surface in the codebase.

Bars carry aware UTC datetimes. Requests carry calendar dates.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time


def utc_now() -> datetime:
    """Return an aware UTC datetime."""

    return datetime.now(tz=UTC)


def utc_today() -> date:
    return utc_now().date()


def parse_dt(value: str) -> datetime:
    """Parse an ISO-8601 datetime string into an aware UTC datetime.

    Accepts:
    - `Z` suffix
    - explicit offsets
    - naive timestamps (assumed UTC)
    - bare dates (midnight UTC)

    Raises:
        ValueError: if parsing fails.
    """

    v = value.strip()
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"

    dt = datetime.fromisoformat(v)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_epoch(value: float) -> datetime:
    """Epoch seconds or milliseconds (exchange klines use ms) to aware UTC."""

    v = float(value)
    if v > 1e11:
        v = v / 1000.0
    return datetime.fromtimestamp(v, tz=UTC)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=UTC)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=UTC)
