from datetime import date, datetime, time, timezone
import calendar
from typing import Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_datetime(value):
    """Promote dates to UTC midnight and naive datetimes to UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo or timezone.utc)


def month_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """(first instant of the month, last instant of the month) for `moment`."""
    tz = moment.tzinfo or timezone.utc
    _, last_day = calendar.monthrange(moment.year, moment.month)
    start = datetime(moment.year, moment.month, 1, tzinfo=tz)
    end = datetime.combine(date(moment.year, moment.month, last_day), time.max, tzinfo=tz)
    return start, end
