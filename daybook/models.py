from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from loguru import logger


class EventColor(str, Enum):
    BLUE = "blue"
    GREEN = "green"
    RED = "red"
    YELLOW = "yellow"
    PURPLE = "purple"
    PINK = "pink"
    ORANGE = "orange"

    @classmethod
    def coerce(cls, value) -> "EventColor":
        """Map a palette name (any case) onto the palette; unknown names fall back to blue."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown event color {!r}, using blue.", value)
            return cls.BLUE


class CalendarView(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    AGENDA = "agenda"


class EventValidationError(ValueError):
    """Raised at save time; `message` is safe to show to the user."""

    def __init__(self, message: str, event_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.event_id = event_id


class LayoutError(ValueError):
    """A single event could not be laid out for a given day."""


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    color: EventColor = EventColor.BLUE
    description: Optional[str] = None
    location: Optional[str] = None
    calendar: Optional[str] = field(default=None, compare=False)

    @property
    def duration(self):
        return self.end - self.start


def generate_event_id() -> str:
    return uuid.uuid4().hex[:9]


def validate_event(event: CalendarEvent) -> CalendarEvent:
    """
    Save-time check. The end must not precede the start; nothing is
    adjusted on the caller's behalf.
    """
    if event.end < event.start:
        logger.warning("Rejected event {}: end {} before start {}", event.id, event.end, event.start)
        raise EventValidationError("End time cannot be before start time", event.id)
    return event
