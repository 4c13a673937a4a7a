import time as time_module
from datetime import datetime, timezone
from dateutil import parser as date_parser

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def to_iso_millis(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z (2024-01-01T10:00:00.000Z)."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"

def now_utc_iso() -> str:
    return to_iso_millis(now_utc())

def epoch_millis_id(dt: datetime | None = None) -> str:
    dt = dt or now_utc()
    return str(int(dt.timestamp() * 1000))

def parse_timestamp(val) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime; None when unparseable."""
    if val is None:
        return None
    if isinstance(val, datetime):
        dt = val
    else:
        text = str(val).strip()
        if not text:
            return None
        try:
            dt = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def parse_date_bound(val: str | None, end_of_day: bool = False) -> datetime | None:
    if not val:
        return None
    dt = parse_timestamp(val)
    if dt is None:
        raise ValueError(f"invalid date: {val}")
    if end_of_day:
        dt = dt.replace(hour=23, minute=59, second=59, microsecond=999000)
    return dt

def coerce_float(val, default: float | None = None) -> float | None:
    if val is None:
        return default
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


class Stopwatch:
    def __init__(self):
        self._started = time_module.monotonic()

    def elapsed(self) -> float:
        return round(time_module.monotonic() - self._started, 3)

