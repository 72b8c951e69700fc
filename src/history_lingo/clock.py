"""Time source used by the engine, ledger and jobs; tests inject a fixed clock."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def date_string(moment: datetime, days_offset: int = 0) -> str:
    """ISO calendar date (UTC) of ``moment`` shifted by ``days_offset`` days."""
    return (moment.astimezone(UTC) + timedelta(days=days_offset)).date().isoformat()
