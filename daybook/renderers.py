from __future__ import annotations

import calendar
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from dateutil.relativedelta import relativedelta
from loguru import logger

import daybook.settings as settings
from daybook.drag import snap_to_quarter_hour
from daybook.event_processing import (
    PositionedEvent,
    SpanningEvent,
    events_for_day,
    events_starting_on,
    is_multi_day,
    local_span,
    occurs_on,
    position_events,
    span_flags,
    spanning_events_for_day,
    split_all_day_events,
)
from daybook.layout import get_layout_config
from daybook.models import CalendarEvent, CalendarView, LayoutError, generate_event_id
from daybook.utils import fmt_time, last_day_touched, to_local, week_start_of
from daybook.visibility import VisibilityResult, compute_visibility


@dataclass
class DayModel:
    day: date
    all_day: list[SpanningEvent] = field(default_factory=list)
    timed: list[PositionedEvent] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class WeekBandEvent:
    event: CalendarEvent
    first_column: int
    last_column: int
    is_first_day: bool
    is_last_day: bool
    show_title_on: date


@dataclass
class WeekModel:
    days: list[DayModel]
    band: list[WeekBandEvent] = field(default_factory=list)


@dataclass
class MonthCellModel:
    day: date
    in_month: bool
    events: list[SpanningEvent] = field(default_factory=list)
    visibility: Optional[VisibilityResult] = None

    @property
    def visible_events(self) -> Optional[list[SpanningEvent]]:
        """None until the cell has been measured."""
        if self.visibility is None:
            return None
        return self.events[:self.visibility.visible]


@dataclass
class MonthModel:
    month: date
    weeks: list[list[MonthCellModel]]


@dataclass
class AgendaDay:
    day: date
    events: list[CalendarEvent]


# Navigation

def visible_days(view, reference: date, week_start: str = None, agenda_days: int = None) -> list[date]:
    view = CalendarView(view)
    if view is CalendarView.DAY:
        return [reference]
    if view is CalendarView.WEEK:
        start = week_start_of(reference, week_start)
        return [start + timedelta(days=i) for i in range(7)]
    if view is CalendarView.MONTH:
        first = reference.replace(day=1)
        last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
        start = week_start_of(first, week_start)
        end = week_start_of(last, week_start) + timedelta(days=6)
        return [start + timedelta(days=i) for i in range((end - start).days + 1)]
    count = settings.AGENDA_DAYS if agenda_days is None else agenda_days
    return [reference + timedelta(days=i) for i in range(count)]


def shift_reference(view, reference: date, step: int, agenda_days: int = None) -> date:
    """Move the reference date by `step` periods of the current view."""
    view = CalendarView(view)
    if view is CalendarView.MONTH:
        return reference + relativedelta(months=step)
    if view is CalendarView.WEEK:
        return reference + timedelta(weeks=step)
    if view is CalendarView.DAY:
        return reference + timedelta(days=step)
    count = settings.AGENDA_DAYS if agenda_days is None else agenda_days
    return reference + timedelta(days=step * count)


def period_label(view, reference: date, week_start: str = None) -> str:
    view = CalendarView(view)
    if view is CalendarView.MONTH:
        return reference.strftime("%B %Y")
    if view is CalendarView.WEEK:
        days = visible_days(view, reference, week_start)
        first, last = days[0], days[-1]
        if first.month == last.month:
            return first.strftime("%B %Y")
        return f"{first.strftime('%b')} - {last.strftime('%b %Y')}"
    if view is CalendarView.DAY:
        return reference.strftime("%A, %B %d, %Y")
    return reference.strftime("%B %Y")


def format_event_time(event: CalendarEvent, duration_minutes: float, tz_local=None) -> str:
    if event.all_day:
        return "All day"
    start, end = local_span(event, tz_local)
    # short events only show when they start
    if duration_minutes < 45:
        return fmt_time(start)
    return f"{fmt_time(start)} - {fmt_time(end)}"


def new_event_draft(start: datetime, hours: int = 1) -> CalendarEvent:
    """Blank event for the edit form after an empty cell was activated."""
    start = snap_to_quarter_hour(start)
    return CalendarEvent(
        id=generate_event_id(),
        title="",
        start=start,
        end=start + timedelta(hours=hours),
    )


# Views

def render_day(
    events: Sequence[CalendarEvent],
    day: date,
    layout: dict | None = None,
    tz_local=None,
) -> DayModel:
    """
    Build the model for one day column. A bad event only blanks its own
    day; the error is logged and carried on the model.
    """
    layout = layout or get_layout_config()
    try:
        buckets = split_all_day_events(events, day, tz_local)
        timed = position_events(buckets.timed, day, layout)
    except LayoutError as e:
        logger.error("Could not lay out {}: {}", day, e)
        return DayModel(day, error=str(e))
    return DayModel(day, all_day=buckets.all_day, timed=timed)


def render_week(
    events: Sequence[CalendarEvent],
    reference: date,
    layout: dict | None = None,
    tz_local=None,
    week_start: str = None,
) -> WeekModel:
    layout = layout or get_layout_config()
    days = visible_days(CalendarView.WEEK, reference, week_start)
    models = [render_day(events, d, layout, tz_local) for d in days]

    band = []
    for event in events:
        if not is_multi_day(event, tz_local):
            continue
        touched = [i for i, d in enumerate(days) if occurs_on(event, d, tz_local)]
        if not touched:
            continue
        start, end = local_span(event, tz_local)
        first_day, last_day = days[touched[0]], days[touched[-1]]
        band.append(WeekBandEvent(
            event=event,
            first_column=touched[0],
            last_column=touched[-1],
            is_first_day=start.date() == first_day,
            is_last_day=last_day_touched(start, end) == last_day,
            # continuation from last week repeats the title on the first visible day
            show_title_on=first_day,
        ))
    band.sort(key=lambda b: to_local(b.event.start, tz_local))
    logger.debug("Week of {}: {} multi-day events in band", days[0], len(band))
    return WeekModel(models, band)


def render_month(
    events: Sequence[CalendarEvent],
    reference: date,
    cell_content_height: float | None = None,
    layout: dict | None = None,
    tz_local=None,
    week_start: str = None,
) -> MonthModel:
    """
    Month grid. Cells list continuing multi-day events first, then the
    events starting that day. Without a measured cell height the visibility
    of every cell stays unknown.
    """
    layout = layout or get_layout_config()
    days = visible_days(CalendarView.MONTH, reference, week_start)
    weeks = []
    for i in range(0, len(days), 7):
        row = []
        for d in days[i:i + 7]:
            cell_events = spanning_events_for_day(events, d, tz_local)
            cell_events += [span_flags(e, d, tz_local) for e in events_starting_on(events, d, tz_local)]
            visibility = compute_visibility(
                cell_content_height, len(cell_events), layout["event_height"], layout["event_gap"],
            )
            row.append(MonthCellModel(d, d.month == reference.month, cell_events, visibility))
        weeks.append(row)
    return MonthModel(reference.replace(day=1), weeks)


def render_agenda(
    events: Sequence[CalendarEvent],
    reference: date,
    agenda_days: int = None,
    tz_local=None,
    include_empty: bool = None,
) -> list[AgendaDay]:
    include_empty = settings.INCLUDE_EMPTY_AGENDA_DAYS if include_empty is None else include_empty
    result = []
    for d in visible_days(CalendarView.AGENDA, reference, agenda_days=agenda_days):
        day_events = events_for_day(events, d, tz_local)
        if day_events or include_empty:
            result.append(AgendaDay(d, day_events))
    return result


def render_view(
    view,
    events: Sequence[CalendarEvent],
    reference: date,
    layout: dict | None = None,
    tz_local=None,
    week_start: str = None,
    cell_content_height: float | None = None,
):
    view = CalendarView(view)
    if view is CalendarView.DAY:
        return render_day(events, reference, layout, tz_local)
    if view is CalendarView.WEEK:
        return render_week(events, reference, layout, tz_local, week_start)
    if view is CalendarView.MONTH:
        return render_month(events, reference, cell_content_height, layout, tz_local, week_start)
    return render_agenda(events, reference, tz_local=tz_local)


def to_dict(model):
    """Plain data (dicts, lists, strings, numbers) for YAML export."""
    if isinstance(model, CalendarEvent):
        return {
            "id": model.id,
            "title": model.title,
            "start": model.start.isoformat(),
            "end": model.end.isoformat(),
            "all_day": model.all_day,
            "color": model.color.value,
        }
    if is_dataclass(model):
        out = {f.name: to_dict(getattr(model, f.name)) for f in fields(model)}
        if isinstance(model, MonthCellModel) and model.visibility is not None:
            out["show_overflow"] = model.visibility.show_overflow
        return out
    if isinstance(model, (list, tuple)):
        return [to_dict(m) for m in model]
    if isinstance(model, Enum):
        return model.value
    if isinstance(model, (datetime, date)):
        return model.isoformat()
    return model
