from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone as dt_tz
from zoneinfo import ZoneInfo


def as_utc(dt: datetime | None) -> datetime | None:
    """
    Normalize a datetime to an aware UTC instant.

    Naive values are read as UTC; some database drivers (SQLite) drop tzinfo
    on the way back even for timezone-aware columns.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_tz.utc)
    return dt.astimezone(dt_tz.utc)


def local_midnight_utc(d: date, tz_name: str) -> datetime:
    """
    Return the UTC instant of local midnight on date `d` in timezone `tz_name`.

    DST rules:
      - If midnight does not exist locally (spring forward at 00:00), zoneinfo
        resolves it with fold=0, which lands on the first valid instant.
      - If midnight is ambiguous, the first occurrence is used.

    Examples:
        >>> from datetime import date
        >>> local_midnight_utc(date(2025, 1, 10), "America/New_York").hour
        5
    """
    tz = ZoneInfo(tz_name)
    local = datetime.combine(d, time(0, 0), tzinfo=tz).replace(fold=0)
    return local.astimezone(dt_tz.utc)


def window_start(frequency: str, now_utc: datetime, tz_name: str = "UTC") -> datetime | None:
    """
    Start of the rolling policy window containing `now_utc`, as a UTC instant.

    Args:
        frequency: "daily", "weekly", "monthly" or "unlimited"
        now_utc: evaluation instant
        tz_name: IANA timezone that defines calendar days

    Returns:
        The window start, or None for "unlimited" (and unknown frequencies),
        which have no window.

    Weeks begin on Sunday. The window is half-open: an instant exactly at the
    returned start belongs to the new window.

    Examples:
        >>> from datetime import datetime, timezone
        >>> now = datetime(2025, 1, 15, 13, 30, tzinfo=timezone.utc)  # a Wednesday
        >>> window_start("weekly", now).isoformat()
        '2025-01-12T00:00:00+00:00'
    """
    local_today = as_utc(now_utc).astimezone(ZoneInfo(tz_name)).date()

    if frequency == "daily":
        anchor = local_today
    elif frequency == "weekly":
        # Sunday = 0 (Python's weekday() has Monday = 0)
        days_since_sunday = (local_today.weekday() + 1) % 7
        anchor = local_today - timedelta(days=days_since_sunday)
    elif frequency == "monthly":
        anchor = local_today.replace(day=1)
    else:
        return None

    return local_midnight_utc(anchor, tz_name)
