import os
import re
from datetime import date, datetime, time
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

DATE_FORMATS = ("%Y-%m-%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y", "%d/%m/%Y")
TIME_FORMATS = ("%I:%M %p", "%I %p", "%H:%M", "%I:%M%p", "%I%p")
TIME_RANGE_SPLIT_RE = re.compile(r"\s*(?:-|–|to)\s*", re.IGNORECASE)


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "Asia/Kolkata")
    return ZoneInfo(name)


def app_timezone() -> ZoneInfo:
    return _timezone()


def now_tz() -> datetime:
    return datetime.now(_timezone())


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_event_date(value: Optional[str]) -> Optional[date]:
    raw = str(value or "").strip()
    if not raw:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def _parse_clock(value: str) -> Optional[time]:
    raw = value.strip().upper().replace(".", "")
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    return None


def parse_event_time_range(value: Optional[str]) -> Optional[Tuple[time, time]]:
    """Parse free text like ``9:00 AM - 5:00 PM``; both ends must parse."""
    raw = str(value or "").strip()
    if not raw:
        return None
    parts = TIME_RANGE_SPLIT_RE.split(raw, maxsplit=1)
    if len(parts) != 2:
        return None
    start, end = _parse_clock(parts[0]), _parse_clock(parts[1])
    if start is None or end is None or end <= start:
        return None
    return start, end
