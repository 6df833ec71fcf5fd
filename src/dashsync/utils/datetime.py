"""Datetime utilities with consistent UTC timezone handling.

All datetimes held by dashsync are timezone-aware and expressed in UTC.
Remote providers receive RFC 3339 strings built by the helpers below.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return current datetime in UTC timezone.
    
    Returns:
        Current datetime with timezone=UTC
    """
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware, assuming UTC if naive.
    
    Args:
        dt: Datetime to check/convert, or None
        
    Returns:
        Timezone-aware datetime in UTC, or None if input was None
    """
    if dt is None:
        return None
    
    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)
    
    return dt.astimezone(timezone.utc)


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO string with timezone info."""
    if dt is None:
        return None
    
    return ensure_aware(dt).isoformat()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 / RFC 3339 timestamp into an aware UTC datetime.
    
    Accepts the trailing ``Z`` designator that ``datetime.fromisoformat``
    rejects on older interpreters, and fractional seconds of any length.
    
    Args:
        value: Timestamp string, or None
        
    Returns:
        Aware datetime in UTC, or None if input was empty
        
    Raises:
        ValueError: If the string is not a valid timestamp
    """
    if not value:
        return None
    
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    
    # fromisoformat on 3.9/3.10 only understands 3 or 6 fractional digits
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        for char in rest:
            if not char.isdigit():
                break
            digits += char
        suffix = rest[len(digits):]
        text = f"{head}.{digits[:6].ljust(6, '0')}{suffix}"
    
    return ensure_aware(datetime.fromisoformat(text))


def to_rfc3339(dt: datetime) -> str:
    """Format an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    aware = ensure_aware(dt)
    return aware.strftime("%Y-%m-%dT%H:%M:%S.") + f"{aware.microsecond // 1000:03d}Z"


def date_to_midnight_utc(day: date) -> str:
    """Express a calendar date as an RFC 3339 timestamp at midnight UTC."""
    return to_rfc3339(datetime(day.year, day.month, day.day, tzinfo=timezone.utc))


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (or the date part of a timestamp) into a date."""
    if not value:
        return None
    
    if "T" in value:
        return parse_iso_datetime(value).date()
    
    return date.fromisoformat(value)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift a datetime by whole months, clamping the day to the month length.
    
    Args:
        dt: Datetime to shift
        months: Number of months, may be negative
        
    Returns:
        Shifted datetime with the same time of day and timezone
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return dt.replace(year=year, month=month, day=min(dt.day, last_day))


def seconds_from_now(seconds: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    """Translate a relative ``expires_in`` value into an absolute UTC instant."""
    if seconds is None:
        return None
    
    return (now or now_utc()) + timedelta(seconds=int(seconds))
