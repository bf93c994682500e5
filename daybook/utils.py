from datetime import datetime, timedelta, date, time
import calendar, re
from dateutil.relativedelta import relativedelta

import daybook.settings as settings

WEEKDAY_INDEX = {"monday": 0, "sunday": 6, "saturday": 5}


def to_local(dt: datetime, tz_local=None) -> datetime:
    """
    Convert an instant to local wall-clock time. Naive datetimes are taken
    to already be local.
    """
    tz_local = tz_local or settings.TZ_LOCAL
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz_local)
    return dt.astimezone(tz_local)


def start_of_day(day: date, tz_local=None) -> datetime:
    tz_local = tz_local or settings.TZ_LOCAL
    return datetime.combine(day, time.min).replace(tzinfo=tz_local)


def day_bounds(day: date, tz_local=None) -> tuple[datetime, datetime]:
    """[midnight, next midnight) for a calendar day, both local."""
    sod = start_of_day(day, tz_local)
    return sod, start_of_day(day + timedelta(days=1), tz_local)


def last_day_touched(start: datetime, end: datetime) -> date:
    """
    The last calendar day an interval occupies. An end exactly at midnight
    belongs to the previous day unless the interval is empty.
    """
    if end > start and end.time() == time.min:
        return (end - timedelta(days=1)).date()
    return max(start, end).date()


def hours_since_midnight(dt: datetime, day: date) -> float:
    """Wall-clock hours between `day`'s midnight and `dt` (24.0 for the next midnight)."""
    delta = dt.replace(tzinfo=None) - datetime.combine(day, time.min)
    return delta.total_seconds() / 3600


def week_start_of(day: date, week_start: str = None) -> date:
    first = WEEKDAY_INDEX.get((week_start or settings.WEEK_START).lower(), 6)
    offset = (day.weekday() - first) % 7
    return day - timedelta(days=offset)


def fmt_time(dt):
    """
    Return a HH:MM or h:MM AM/PM string based on USE_24H.
    """
    if settings.USE_24H:
        return dt.strftime("%H:%M")
    else:
        return dt.strftime("%-I:%M %p")


def parse_date_range(s: str, tzinfo, week_start: str = None) -> list[date]:
    s     = s.strip().strip('"').strip("'").lower()
    today = datetime.now(tz=tzinfo).date()

    if s in ("day", "today"):
        return [today]
    if s == "week":
        s = "this week"
    if s == "month":
        s = "this month"

    if s == "this week":
        start  = week_start_of(today, week_start)
        end    = start + timedelta(days=6)
    elif s == "this month":
        start  = today.replace(day=1)
        last   = calendar.monthrange(start.year, start.month)[1]
        end    = start.replace(day=last)

    # aligned "N units"
    elif (m := re.fullmatch(r'(?P<num>\d+)\s*(?P<unit>days?|weeks?|months?)', s)):
        num, unit = int(m.group("num")), m.group("unit")
        if unit.startswith("day"):
            start = today
            end   = today + timedelta(days=num - 1)
        elif unit.startswith("week"):
            start  = week_start_of(today, week_start)
            end    = start + timedelta(weeks=num) - timedelta(days=1)
        else:
            start  = today.replace(day=1)
            end    = start + relativedelta(months=num) - timedelta(days=1)

    elif re.search(r"[:/]", s):
        sep   = ":" if ":" in s else "/"
        a, b  = s.split(sep, 1)
        start = datetime.strptime(a.strip(), "%Y-%m-%d").date()
        end   = datetime.strptime(b.strip(), "%Y-%m-%d").date()
    elif " to " in s:
        a, b  = re.split(r"\s+to\s+", s)
        start = datetime.strptime(a, "%Y-%m-%d").date()
        end   = datetime.strptime(b, "%Y-%m-%d").date()
    else:
        start = end = datetime.strptime(s, "%Y-%m-%d").date()

    if start > end:
        raise ValueError(f"Start date {start} after end date {end}")

    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
