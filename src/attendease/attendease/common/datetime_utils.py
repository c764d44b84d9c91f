from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from ..core.constants import DEFAULT_TIMEZONE


def now_local(tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Current wall-clock time in the attendance timezone (naive).

    Note: Wrapped so tests can patch/mocked easier. Naive values match the
    DATETIME columns, which store local time.
    """
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def format_hhmm(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%I:%M %p")
