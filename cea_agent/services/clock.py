"""Clock pinned to the utility's reference timezone.

Agents get no other source of "now", and folio date buckets use the same
clock, so both are testable by injecting a clock with a fixed ``now``.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Mexico_City"


class Clock:
    """Returns timezone-aware datetimes in a fixed reference timezone."""

    def __init__(self, timezone: str = DEFAULT_TIMEZONE) -> None:
        self._tz = ZoneInfo(timezone)

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)
