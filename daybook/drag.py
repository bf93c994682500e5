from __future__ import annotations

import math
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

from dateutil import tz
from loguru import logger

import daybook.settings as settings
from daybook.event_processing import compute_events_hash
from daybook.layout import DropTarget
from daybook.models import CalendarEvent, CalendarView
from daybook.utils import to_local


class DragState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    DRAGGING = "dragging"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


class InputKind(str, Enum):
    MOUSE = "mouse"
    POINTER = "pointer"
    TOUCH = "touch"


@dataclass(frozen=True)
class PointerSample:
    x: float
    y: float
    timestamp_ms: float = 0.0

    def distance_to(self, other: "PointerSample") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


class Geometry(Protocol):
    def resolve(self, x: float, y: float) -> Optional[DropTarget]:
        ...


@dataclass(frozen=True)
class DragSource:
    """
    What a draggable event hands over when pressed. `top`/`left` are the
    screen coordinates of the event's rendered box, `day` the day of the
    segment being dragged (multi-day events render one segment per day).
    """
    event: Optional[CalendarEvent]
    view: Optional[CalendarView]
    top: float = 0.0
    left: float = 0.0
    height: float = 0.0
    width: float = 0.0
    day: Optional[date] = None
    is_multi_day: bool = False
    is_first_day: bool = True
    is_last_day: bool = True
    multi_day_width: Optional[float] = None


class PointerSensor:
    """Mouse/pointer: activate once the pointer travels `distance` px."""

    def __init__(self, distance: float = None):
        self.distance = settings.DRAG_DISTANCE_PX if distance is None else distance

    def activates(self, press: PointerSample, current: PointerSample) -> bool:
        return press.distance_to(current) >= self.distance

    def aborts(self, press: PointerSample, current: PointerSample) -> bool:
        return False


class TouchSensor:
    """Touch: activate after holding `delay_ms` without drifting past `tolerance` px."""

    def __init__(self, delay_ms: float = None, tolerance: float = None):
        self.delay_ms = settings.DRAG_TOUCH_DELAY_MS if delay_ms is None else delay_ms
        self.tolerance = settings.DRAG_TOUCH_TOLERANCE_PX if tolerance is None else tolerance

    def activates(self, press: PointerSample, current: PointerSample) -> bool:
        # drift before the hold ends is handled by `aborts`
        return current.timestamp_ms - press.timestamp_ms >= self.delay_ms

    def aborts(self, press: PointerSample, current: PointerSample) -> bool:
        held = current.timestamp_ms - press.timestamp_ms
        return held < self.delay_ms and press.distance_to(current) > self.tolerance


def default_sensors() -> dict:
    return {
        InputKind.MOUSE: PointerSensor(),
        InputKind.POINTER: PointerSensor(),
        InputKind.TOUCH: TouchSensor(),
    }


def snap_minutes(fraction: float, granularity: int = None) -> int:
    """
    Minute slot for the fractional part of an hour. Ties round up and the
    last slot absorbs the end of the hour, so with 15-minute granularity the
    transitions sit at .125, .375 and .625.
    """
    granularity = granularity or settings.SNAP_MINUTES
    slots = 60 // granularity
    index = min(math.floor(fraction * slots + 0.5), slots - 1)
    return max(0, index) * granularity


def snap_fractional_hour(hour: float, granularity: int = None) -> tuple[int, int]:
    whole = math.floor(hour)
    return whole, snap_minutes(hour - whole, granularity)


def snap_to_quarter_hour(dt: datetime, granularity: int = None) -> datetime:
    """Round to the nearest slot boundary; exact halves round up."""
    granularity = granularity or settings.SNAP_MINUTES
    base = dt.replace(second=0, microsecond=0)
    remainder = dt.minute % granularity + (dt.second + dt.microsecond / 1e6) / 60
    if remainder == 0:
        return base
    floor = base - timedelta(minutes=dt.minute % granularity)
    if remainder < granularity / 2:
        return floor
    return floor + timedelta(minutes=granularity)


@dataclass
class DragSession:
    original: CalendarEvent
    view: CalendarView
    origin_day: date
    offset_x: float
    offset_y: float
    height: float
    width: float
    is_multi_day: bool
    is_first_day: bool
    is_last_day: bool
    candidate: datetime
    duration: timedelta
    pointer: PointerSample

    @property
    def event_id(self) -> str:
        return self.original.id


@dataclass(frozen=True)
class DragPreview:
    event_id: str
    top: float
    left: float
    width: float
    height: float
    candidate: datetime
    is_multi_day: bool
    is_first_day: bool
    is_last_day: bool


@dataclass
class _PendingPress:
    source: DragSource
    sample: PointerSample
    kind: InputKind


class DragController:
    """
    One drag-to-reschedule gesture at a time.

    The controller never writes events itself: a successful drop produces a
    full replacement event that is handed to `on_event_update`.
    """

    def __init__(
        self,
        on_event_update: Callable[[CalendarEvent], None],
        on_event_create: Callable[[datetime], None] | None = None,
        on_candidate: Callable[[DragPreview], None] | None = None,
        on_cancel: Callable[[str], None] | None = None,
        sensors: dict | None = None,
        tz_local=None,
        granularity: int = None,
        create_hour: int = None,
    ):
        self.on_event_update = on_event_update
        self.on_event_create = on_event_create
        self.on_candidate = on_candidate
        self.on_cancel = on_cancel
        self.sensors = sensors or default_sensors()
        self.tz_local = tz_local or settings.TZ_LOCAL
        self.granularity = granularity or settings.SNAP_MINUTES
        self.create_hour = settings.CREATE_HOUR if create_hour is None else create_hour
        self.state = DragState.IDLE
        self.session: Optional[DragSession] = None
        self.last_outcome: Optional[DragState] = None
        self._pending: Optional[_PendingPress] = None
        self._snapshot_hash: Optional[str] = None

    # -- interactivity -------------------------------------------------

    @property
    def active_id(self) -> Optional[str]:
        return self.session.event_id if self.session else None

    def is_interactive(self, event_id: str) -> bool:
        """While dragging, every other event is a placeholder."""
        if self.state is not DragState.DRAGGING:
            return True
        return event_id == self.active_id

    # -- gesture -------------------------------------------------------

    def press(self, source: DragSource, sample: PointerSample, kind: InputKind = InputKind.POINTER) -> bool:
        if self.state is not DragState.IDLE:
            logger.log("DRAG", "Ignoring press while {}", self.state.value)
            return False
        if source.event is None or source.view is None:
            logger.error("Drag source is missing its {}; not starting a drag", "event" if source.event is None else "view")
            return False
        try:
            CalendarView(source.view)
        except ValueError:
            logger.error("Drag source for {!r} has unknown view {!r}; not starting a drag", source.event.id, source.view)
            return False
        self._pending = _PendingPress(source, sample, InputKind(kind))
        self.state = DragState.PENDING
        return True

    def move(self, sample: PointerSample, geometry: Geometry | None = None) -> bool:
        """
        Feed a pointer-move. Returns True when the candidate time changed.
        Repeating a move with the same input leaves all state untouched.
        """
        if self.state is DragState.PENDING:
            pending = self._pending
            sensor = self.sensors[pending.kind]
            if sensor.aborts(pending.sample, sample):
                logger.log("DRAG", "Press on {} released to scrolling", pending.source.event.id)
                self._reset()
                return False
            if not sensor.activates(pending.sample, sample):
                return False
            if not self._pickup(pending):
                return False
        if self.state is not DragState.DRAGGING:
            return False

        self.session.pointer = sample
        if geometry is None:
            return False
        target = self._resolve(geometry, sample)
        if target is None:
            return False
        return self._update_candidate(target)

    def release(self, sample: PointerSample, geometry: Geometry | None = None) -> Optional[CalendarEvent]:
        if self.state is DragState.PENDING:
            # below the activation threshold this was a click
            self._reset()
            return None
        if self.state is not DragState.DRAGGING:
            return None
        self.session.pointer = sample
        target = self._resolve(geometry, sample) if geometry is not None else None
        if target is None:
            self.cancel("released outside the grid")
            return None
        self._update_candidate(target)
        return self._commit()

    def cancel(self, reason: str = "cancelled") -> None:
        if self.state is DragState.PENDING:
            self._reset()
            return
        if self.state is not DragState.DRAGGING:
            return
        logger.log("DRAG", "Drag of {} cancelled: {}", self.session.event_id, reason)
        self._finish(DragState.CANCELLED)
        if self.on_cancel:
            self.on_cancel(reason)

    def sync_snapshot(self, events: Iterable[CalendarEvent]) -> None:
        """Record the latest event snapshot; a change under an active drag aborts it."""
        new_hash = compute_events_hash(events)
        changed = self._snapshot_hash is not None and new_hash != self._snapshot_hash
        self._snapshot_hash = new_hash
        if changed and self.state in (DragState.PENDING, DragState.DRAGGING):
            self.cancel("events changed")

    def teardown(self) -> None:
        self.cancel("view unmounted")

    # -- outputs -------------------------------------------------------

    def preview(self) -> Optional[DragPreview]:
        s = self.session
        if s is None:
            return None
        return DragPreview(
            event_id=s.event_id,
            top=s.pointer.y - s.offset_y,
            left=s.pointer.x - s.offset_x,
            width=s.width,
            height=s.height,
            candidate=s.candidate,
            is_multi_day=s.is_multi_day,
            is_first_day=s.is_first_day,
            is_last_day=s.is_last_day,
        )

    def create_at(self, target: DropTarget) -> Optional[datetime]:
        """Empty-cell activation: hand a snapped start instant to the create callback."""
        if self.state is DragState.DRAGGING:
            return None
        if target.hour is None:
            start = datetime.combine(target.day, time(self.create_hour)).replace(tzinfo=self.tz_local)
        else:
            hours, minutes = snap_fractional_hour(target.hour, self.granularity)
            start = datetime.combine(target.day, time(hours, minutes)).replace(tzinfo=self.tz_local)
        logger.debug("Creating event at {}", start.isoformat())
        if self.on_event_create:
            self.on_event_create(start)
        return start

    # -- internals -----------------------------------------------------

    def _pickup(self, pending: _PendingPress) -> bool:
        source = pending.source
        event = source.event
        try:
            start = to_local(event.start, self.tz_local)
            duration = event.end - event.start
        except (AttributeError, TypeError) as e:
            logger.error("Malformed drag source for {!r}: {}", getattr(event, "id", None), e)
            self._reset()
            return False
        width = source.multi_day_width if source.is_multi_day and source.multi_day_width else source.width
        self.session = DragSession(
            original=event,
            view=CalendarView(source.view),
            origin_day=source.day or start.date(),
            offset_x=pending.sample.x - source.left,
            offset_y=pending.sample.y - source.top,
            height=source.height,
            width=width,
            is_multi_day=source.is_multi_day,
            is_first_day=source.is_first_day,
            is_last_day=source.is_last_day,
            candidate=start,
            duration=duration,
            pointer=pending.sample,
        )
        self._pending = None
        self.state = DragState.DRAGGING
        logger.log("DRAG", "Picked up {} ({}) in {} view", event.id, event.title, self.session.view.value)
        return True

    def _resolve(self, geometry: Geometry, sample: PointerSample) -> Optional[DropTarget]:
        s = self.session
        if s.view is CalendarView.MONTH or s.is_multi_day:
            return geometry.resolve(sample.x, sample.y)
        # keep the grabbed point under the pointer: the event's top edge decides the time
        return geometry.resolve(sample.x, sample.y - s.offset_y)

    def _candidate_for(self, target: DropTarget) -> datetime:
        s = self.session
        if s.view is CalendarView.MONTH or s.is_multi_day or target.hour is None:
            start = to_local(s.original.start, self.tz_local)
            shifted = start.date() + (target.day - s.origin_day)
            return datetime.combine(shifted, start.time()).replace(tzinfo=self.tz_local)
        hours, minutes = snap_fractional_hour(target.hour, self.granularity)
        return datetime.combine(target.day, time(hours, minutes)).replace(tzinfo=self.tz_local)

    def _update_candidate(self, target: DropTarget) -> bool:
        candidate = self._candidate_for(target)
        if candidate == self.session.candidate:
            return False
        self.session.candidate = candidate
        logger.log("DRAG", "Candidate for {}: {}", self.session.event_id, candidate.isoformat())
        if self.on_candidate:
            self.on_candidate(self.preview())
        return True

    def _commit(self) -> CalendarEvent:
        s = self.session
        start = s.candidate
        # duration is elapsed time, not wall-clock time
        end = (start.astimezone(tz.UTC) + s.duration).astimezone(self.tz_local)
        updated = replace(s.original, start=start, end=end)
        self._finish(DragState.DROPPED)
        logger.info("Moved '{}' to {}", updated.title, to_local(updated.start, self.tz_local).isoformat())
        self.on_event_update(updated)
        return updated

    def _finish(self, outcome: DragState) -> None:
        self.last_outcome = outcome
        self._reset()

    def _reset(self) -> None:
        self.session = None
        self._pending = None
        self.state = DragState.IDLE


class DragContext:
    """
    Drag state scoped to one mounted calendar. Views receive the context
    instead of reaching for a shared global.
    """

    def __init__(self, on_event_update, on_event_create=None, **kwargs):
        self.controller = DragController(on_event_update, on_event_create, **kwargs)
        self.closed = False

    def snapshot(self, events: Iterable[CalendarEvent]) -> None:
        self.controller.sync_snapshot(events)

    def close(self) -> None:
        if not self.closed:
            self.controller.teardown()
            self.closed = True


@contextmanager
def drag_scope(on_event_update, on_event_create=None, **kwargs):
    ctx = DragContext(on_event_update, on_event_create, **kwargs)
    try:
        yield ctx
    finally:
        ctx.close()
