from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence

from loguru import logger

import daybook.settings as settings
from daybook.utils import hours_since_midnight

# Smallest pointer target a host should draw for a positioned event
MIN_HIT_HEIGHT = 12.0


def get_layout_config(
    hour_height: float = None,
    event_height: float = None,
    event_gap: float = None,
    week_cells_height: float = None,
    start_hour: int = None,
    end_hour: int = None,
    column_indent: float = None,
    z_base: int = None,
) -> dict:
    """Collect the fixed layout constants, falling back to settings for anything not given."""
    layout = {
        "hour_height":       settings.HOUR_HEIGHT if hour_height is None else hour_height,
        "event_height":      settings.EVENT_HEIGHT if event_height is None else event_height,
        "event_gap":         settings.EVENT_GAP if event_gap is None else event_gap,
        "week_cells_height": settings.WEEK_CELLS_HEIGHT if week_cells_height is None else week_cells_height,
        "start_hour":        settings.START_HOUR if start_hour is None else start_hour,
        "end_hour":          settings.END_HOUR if end_hour is None else end_hour,
        "column_indent":     settings.COLUMN_INDENT if column_indent is None else column_indent,
        "z_base":            settings.Z_BASE if z_base is None else z_base,
    }
    if layout["end_hour"] <= layout["start_hour"]:
        raise ValueError(
            f"Grid end hour {layout['end_hour']} must be after start hour {layout['start_hour']}"
        )
    layout["grid_height"] = (layout["end_hour"] - layout["start_hour"]) * layout["hour_height"]
    return layout


def time_to_offset(dt: datetime, day: date, layout: dict) -> float:
    """
    Convert a local datetime to a vertical offset from the top of `day`'s grid.
    """
    elapsed = hours_since_midnight(dt, day) - layout["start_hour"]
    return elapsed * layout["hour_height"]


def column_geometry(column: int, indent: float = None) -> tuple[float, float]:
    """
    (left, width) fractions for a column. The first column spans the full
    width; later ones are inset by `indent` per column at a fixed width.
    """
    indent = settings.COLUMN_INDENT if indent is None else indent
    if column == 0:
        return 0.0, 1.0
    return column * indent, 1.0 - indent


def hit_height(height: float) -> float:
    return max(height, MIN_HIT_HEIGHT)


@dataclass(frozen=True)
class DropTarget:
    """A grid cell under the pointer: a date, plus a fractional hour on time grids."""
    day: date
    hour: Optional[float] = None


@dataclass
class TimeGridGeometry:
    """
    Screen placement of a day/week time grid: a gutter for hour labels
    followed by one equal-width column per day.
    """
    days: Sequence[date]
    origin_x: float
    origin_y: float
    day_width: float
    hour_height: float
    gutter_width: float = 0.0
    start_hour: int = 0
    end_hour: int = 24

    def resolve(self, x: float, y: float) -> Optional[DropTarget]:
        col_x = x - self.origin_x - self.gutter_width
        if col_x < 0 or self.day_width <= 0:
            return None
        index = int(col_x // self.day_width)
        if index >= len(self.days):
            return None
        hour = self.start_hour + (y - self.origin_y) / self.hour_height
        if hour < self.start_hour or hour >= self.end_hour:
            return None
        return DropTarget(self.days[index], hour)

    def column_left(self, day: date) -> float:
        return self.origin_x + self.gutter_width + list(self.days).index(day) * self.day_width


@dataclass
class MonthGridGeometry:
    """Screen placement of a month grid: rows of weeks, seven cells each."""
    weeks: Sequence[Sequence[date]]
    origin_x: float
    origin_y: float
    cell_width: float
    cell_height: float

    def resolve(self, x: float, y: float) -> Optional[DropTarget]:
        if x < self.origin_x or y < self.origin_y:
            return None
        col = math.floor((x - self.origin_x) / self.cell_width)
        row = math.floor((y - self.origin_y) / self.cell_height)
        if row >= len(self.weeks) or col >= len(self.weeks[row]):
            logger.log("DRAG", "Pointer ({x:.1f}, {y:.1f}) outside month grid", x=x, y=y)
            return None
        return DropTarget(self.weeks[row][col])
