from collections import defaultdict
from datetime import datetime, date, time, timedelta
from tempfile import NamedTemporaryFile

import pytz
import requests
from icalendar import Calendar as iCal
from dateutil import tz as dateutil_tz
from dateutil.rrule import rrulestr
from loguru import logger

import daybook.settings as settings
from daybook.models import CalendarEvent, EventColor


def download_calendar(source: str) -> bytes:
    """
    Fetch an ICS calendar from a URL or file path.
    """
    if source.startswith("http"):
        resp = requests.get(source, timeout=30)
        resp.raise_for_status()
        return resp.content
    else:
        with open(source, "rb") as f:
            return f.read()


def parse_calendar(raw: bytes) -> iCal:
    return iCal.from_ical(raw)


def build_tz_factory(cal: iCal) -> dateutil_tz.tzical | None:
    """
    Extract VTIMEZONE blocks and build a tzical factory if present.
    """
    vtz_blocks = [comp for comp in cal.walk() if comp.name == "VTIMEZONE"]
    if not vtz_blocks:
        return None

    with NamedTemporaryFile(mode="wb", suffix=".ics", delete=False) as tf:
        for comp in vtz_blocks:
            # dateutil chokes on X- properties
            for prop in list(comp.keys()):
                if prop.upper().startswith("X-"):
                    comp.pop(prop, None)
            tf.write(comp.to_ical())
        tf.flush()
        return dateutil_tz.tzical(tf.name)


def build_override_map(components) -> dict:
    """
    Map UID to the recurrence instants replaced by a RECURRENCE-ID component.
    """
    override_map = defaultdict(set)
    for comp in components:
        if comp.get('RECURRENCE-ID'):
            override_map[str(comp.get('UID'))].add(comp.decoded('RECURRENCE-ID'))
    return override_map


def _is_date_only(value) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def _attach_tz(comp, dt_raw, param_name, tz_factory, tz_local):
    """
    Give a decoded DTSTART/DTEND a timezone without converting it: DATE
    values become local midnight, naive times take their TZID (or UTC).
    """
    if _is_date_only(dt_raw):
        return datetime.combine(dt_raw, time.min).replace(tzinfo=tz_local)
    dt = dt_raw
    if dt.tzinfo is None:
        tzid = comp[param_name].params.get('TZID') if comp.get(param_name) else None
        tzinfo = None
        if tz_factory and tzid:
            try:
                tzinfo = tz_factory.get(tzid)
            except ValueError:
                logger.warning("Unknown TZID {!r}, assuming UTC", tzid)
        dt = dt.replace(tzinfo=tzinfo or pytz.UTC)
    return dt


def _make_event(comp, start, end, all_day, color, calendar_name, instance=None) -> CalendarEvent:
    uid = str(comp.get('UID', ''))
    event_id = uid if instance is None else f"{uid}@{instance.isoformat()}"
    return CalendarEvent(
        id=event_id,
        title=str(comp.get('SUMMARY', '')),
        start=start,
        end=end,
        all_day=all_day,
        color=color,
        description=str(comp.get('DESCRIPTION')) if comp.get('DESCRIPTION') else None,
        location=str(comp.get('LOCATION')) if comp.get('LOCATION') else None,
        calendar=calendar_name,
    )


def expand_component(
    comp,
    color: EventColor,
    tz_factory,
    window_start: datetime,
    window_end: datetime,
    tz_local,
    override_map: dict,
    calendar_name: str = None,
) -> list[CalendarEvent]:
    """
    Expand one VEVENT into the instances overlapping [window_start, window_end):
    one-offs, DATE-valued all-day events and RRULE recurrences.
    """
    start_raw = comp.decoded('dtstart')
    if comp.get('dtend'):
        end_raw = comp.decoded('dtend')
    elif comp.get('duration'):
        end_raw = start_raw + comp.decoded('duration')
    elif _is_date_only(start_raw):
        # RFC 5545: a DATE start without an end lasts one day
        end_raw = start_raw + timedelta(days=1)
    else:
        end_raw = start_raw

    all_day = _is_date_only(start_raw)
    start_src = _attach_tz(comp, start_raw, "dtstart", tz_factory, tz_local)
    end_src = _attach_tz(comp, end_raw, "dtend", tz_factory, tz_local)
    start, end = start_src.astimezone(tz_local), end_src.astimezone(tz_local)
    length = end - start

    raw_rr = comp.get('RRULE')
    if not raw_rr:
        if start < window_end and (end > window_start or start >= window_start):
            # a RECURRENCE-ID override stands in for one instance of its series
            instance = start if comp.get("RECURRENCE-ID") else None
            return [_make_event(comp, start, end, all_day, color, calendar_name, instance)]
        return []

    uid = str(comp.get('UID'))
    exdates = set()
    ex_prop = comp.get('EXDATE')
    if ex_prop:
        ex_list = ex_prop if isinstance(ex_prop, list) else [ex_prop]
        for prop in ex_list:
            for exdt in getattr(prop, 'dts', []):
                dt0 = exdt.dt
                if _is_date_only(dt0):
                    dt0 = datetime.combine(dt0, time.min)
                if dt0.tzinfo is None:
                    dt0 = dt0.replace(tzinfo=start.tzinfo)
                exdates.add(dt0)

    # expand in the event's own zone so wall-clock times survive DST
    rule_start = start_src if not all_day else start_src.replace(tzinfo=None)
    rule = rrulestr(raw_rr.to_ical().decode(), dtstart=rule_start)
    lo, hi = window_start - length, window_end
    if all_day:
        lo, hi = lo.replace(tzinfo=None), hi.replace(tzinfo=None)

    instances = []
    overrides = override_map.get(uid, set())
    for occ in rule.between(lo, hi, inc=True):
        if occ.tzinfo is None:
            occ = occ.replace(tzinfo=tz_local)
        if occ in overrides or occ in exdates or (all_day and occ.date() in overrides):
            continue
        st = occ.astimezone(tz_local)
        instances.append(_make_event(comp, st, st + length, all_day, color, calendar_name, instance=st))
    return instances


def load_events(sources: list[dict], window_start: datetime, window_end: datetime, tz_local=None) -> list[CalendarEvent]:
    """
    High-level loader: for each calendar entry, download, parse, and expand
    VEVENTs into an event snapshot covering the window.
    """
    tz_local = tz_local or settings.TZ_LOCAL
    snapshot = []
    names = [entry.get("name", "<unknown>") for entry in sources]
    logger.debug("Loading {} calendars: {}", len(names), names)
    for entry in sources:
        name = entry.get("name")
        color = EventColor.coerce(entry.get("color", "blue"))
        source = entry.get("source")
        logger.debug("Fetching calendar {} from {}...", name, source)
        cal = parse_calendar(download_calendar(source))
        tz_factory = build_tz_factory(cal)
        components = [c for c in cal.walk() if c.name == "VEVENT"]
        override_map = build_override_map(components)
        for comp in components:
            snapshot.extend(expand_component(
                comp, color, tz_factory, window_start, window_end, tz_local, override_map, name,
            ))

    seen = set()
    unique = []
    for event in sorted(snapshot, key=lambda e: e.start):
        if event.id in seen:
            logger.debug("Skipping duplicate: {}, {}. (UID: {})", event.title, event.start.isoformat(), event.id)
            continue
        seen.add(event.id)
        unique.append(event)
    return unique
