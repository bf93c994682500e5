from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from loguru import logger

from daybook.layout import column_geometry, get_layout_config, time_to_offset
from daybook.models import CalendarEvent, LayoutError
from daybook.utils import day_bounds, last_day_touched, to_local


@dataclass(frozen=True)
class ClippedInterval:
    event: CalendarEvent
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class SpanningEvent:
    event: CalendarEvent
    is_first_day: bool
    is_last_day: bool


@dataclass
class DayBuckets:
    day: date
    all_day: list[SpanningEvent] = field(default_factory=list)
    timed: list[ClippedInterval] = field(default_factory=list)


@dataclass(frozen=True)
class PositionedEvent:
    event: CalendarEvent
    start: datetime
    end: datetime
    top: float
    height: float
    column: int
    left: float
    width: float
    z_index: int


def local_span(event: CalendarEvent, tz_local=None) -> tuple[datetime, datetime]:
    return to_local(event.start, tz_local), to_local(event.end, tz_local)


def is_multi_day(event: CalendarEvent, tz_local=None) -> bool:
    if event.all_day:
        return True
    start, end = local_span(event, tz_local)
    return last_day_touched(start, end) > start.date()


def occurs_on(event: CalendarEvent, day: date, tz_local=None) -> bool:
    start, end = local_span(event, tz_local)
    return start.date() <= day <= last_day_touched(start, end)


def events_for_day(events: Iterable[CalendarEvent], day: date, tz_local=None) -> list[CalendarEvent]:
    """Events touching `day`, ordered by start. Ties keep snapshot order."""
    kept = [e for e in events if occurs_on(e, day, tz_local)]
    return sorted(kept, key=lambda e: to_local(e.start, tz_local))


def span_flags(event: CalendarEvent, day: date, tz_local=None) -> SpanningEvent:
    start, end = local_span(event, tz_local)
    return SpanningEvent(
        event=event,
        is_first_day=start.date() == day,
        is_last_day=last_day_touched(start, end) == day,
    )


def clip_to_day(event: CalendarEvent, day: date, tz_local=None) -> ClippedInterval:
    """
    Truncate an event to `day`'s midnight boundaries. Raises LayoutError for
    intervals that end before they start; those are rejected at save time and
    must not reach the grid.
    """
    start, end = local_span(event, tz_local)
    if end < start:
        raise LayoutError(f"Event {event.id!r} ends before it starts ({start} > {end})")
    sod, sod_next = day_bounds(day, tz_local)
    return ClippedInterval(event, max(start, sod), min(end, sod_next))


def split_all_day_events(events: Iterable[CalendarEvent], day: date, tz_local=None) -> DayBuckets:
    buckets = DayBuckets(day)
    for event in events_for_day(events, day, tz_local):
        if is_multi_day(event, tz_local):
            buckets.all_day.append(span_flags(event, day, tz_local))
        else:
            buckets.timed.append(clip_to_day(event, day, tz_local))
    logger.log(
        "LAYOUT", "{}: {} all-day/multi-day, {} timed",
        day, len(buckets.all_day), len(buckets.timed),
    )
    return buckets


def classify_window(events: Sequence[CalendarEvent], days: Iterable[date], tz_local=None) -> list[DayBuckets]:
    return [split_all_day_events(events, d, tz_local) for d in days]


def events_starting_on(events: Iterable[CalendarEvent], day: date, tz_local=None) -> list[CalendarEvent]:
    """Month cells list every event on its start day, multi-day ones included."""
    kept = [e for e in events if to_local(e.start, tz_local).date() == day]
    return sorted(kept, key=lambda e: to_local(e.start, tz_local))


def spanning_events_for_day(events: Iterable[CalendarEvent], day: date, tz_local=None) -> list[SpanningEvent]:
    """Multi-day events continuing through `day` without starting on it."""
    kept = []
    for event in events_for_day(events, day, tz_local):
        if not is_multi_day(event, tz_local):
            continue
        flags = span_flags(event, day, tz_local)
        if not flags.is_first_day:
            kept.append(flags)
    return kept


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    return a_start < b_end and b_start < a_end


def assign_columns(intervals: Sequence[ClippedInterval]) -> list[tuple[ClippedInterval, int]]:
    """
    Greedy first-fit lane assignment. Intervals are taken by start, longer
    first on ties; `sorted` is stable so equal start and duration keep
    their input order.
    """
    ordered = sorted(intervals, key=lambda iv: (iv.start, -iv.duration.total_seconds()))
    columns: list[tuple[datetime, datetime]] = []
    placed = []
    for iv in ordered:
        for index, (held_start, held_end) in enumerate(columns):
            if not overlaps(iv.start, iv.end, held_start, held_end):
                columns[index] = (iv.start, iv.end)
                placed.append((iv, index))
                break
        else:
            columns.append((iv.start, iv.end))
            placed.append((iv, len(columns) - 1))
    if len(columns) > 1:
        logger.log("LAYOUT", "Packed {} events into {} columns", len(placed), len(columns))
    return placed


def position_events(intervals: Sequence[ClippedInterval], day: date, layout: dict) -> list[PositionedEvent]:
    result = []
    for iv, column in assign_columns(intervals):
        left, width = column_geometry(column, layout["column_indent"])
        top = time_to_offset(iv.start, day, layout)
        bottom = time_to_offset(iv.end, day, layout)
        result.append(PositionedEvent(
            event=iv.event,
            start=iv.start,
            end=iv.end,
            top=top,
            height=bottom - top,
            column=column,
            left=left,
            width=width,
            z_index=layout["z_base"] + column,
        ))
        logger.log(
            "LAYOUT", "  • col {c}: {t} top={top:.1f} h={h:.1f}",
            c=column, t=iv.event.title, top=top, h=bottom - top,
        )
    return result


def layout_day(
    events: Sequence[CalendarEvent],
    day: date,
    layout: dict | None = None,
    tz_local=None,
) -> list[PositionedEvent]:
    """Classify `events` for one day and position its timed events."""
    layout = layout or get_layout_config()
    buckets = split_all_day_events(events, day, tz_local)
    return position_events(buckets.timed, day, layout)


def compute_events_hash(events: Iterable[CalendarEvent]) -> str:
    """Order-independent fingerprint of an event snapshot."""
    items = []
    for e in events:
        fields = (
            e.id, e.title, e.start.isoformat(), e.end.isoformat(), str(e.all_day),
            str(getattr(e.color, "value", e.color)), e.description or "", e.location or "",
        )
        items.append("\x1f".join(fields).encode())
    items.sort(key=lambda data: hashlib.sha256(data).hexdigest())
    h = hashlib.sha256()
    for data in items:
        h.update(data)
        h.update(b"\x1e")
    return h.hexdigest()
