from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

import daybook.settings as settings


@dataclass(frozen=True)
class VisibilityResult:
    visible: int
    remaining: int

    @property
    def show_overflow(self) -> bool:
        return self.remaining > 0


def rows_that_fit(container_height: float, item_height: float, gap: float) -> int:
    if item_height + gap <= 0:
        raise ValueError(f"Row pitch must be positive, got {item_height} + {gap}")
    return max(0, math.floor((container_height + gap) / (item_height + gap)))


def compute_visibility(
    container_height: Optional[float],
    total_count: int,
    item_height: float = None,
    gap: float = None,
    overflow_height: float = None,
) -> Optional[VisibilityResult]:
    """
    How many rows of `item_height` fit in `container_height`, keeping one
    slot for the "+N more" control whenever not everything fits.

    Returns None while the container is unmeasured; callers defer rendering
    rather than treat that as no space.
    """
    if container_height is None:
        return None
    item_height = settings.EVENT_HEIGHT if item_height is None else item_height
    gap = settings.EVENT_GAP if gap is None else gap
    overflow_height = item_height if overflow_height is None else overflow_height

    visible = rows_that_fit(container_height, item_height, gap)
    if total_count > visible:
        while visible > 0 and visible * (item_height + gap) + overflow_height > container_height:
            visible -= 1
    else:
        visible = total_count
    return VisibilityResult(visible=visible, remaining=max(0, total_count - visible))


class VisibilityWatcher:
    """
    Tracks one reference container. Size notifications only record the
    latest height; `flush_frame` (called once per rendered frame) does the
    recomputation, so a burst of resizes costs a single pass.
    """

    def __init__(
        self,
        item_height: float = None,
        gap: float = None,
        total_count: int = 0,
        on_change: Callable[[Optional[VisibilityResult]], None] | None = None,
    ):
        self.item_height = settings.EVENT_HEIGHT if item_height is None else item_height
        self.gap = settings.EVENT_GAP if gap is None else gap
        self.total_count = total_count
        self.on_change = on_change
        self.height: Optional[float] = None
        self.result: Optional[VisibilityResult] = None
        self.recomputations = 0
        self._dirty = False
        self._connected = True

    def observe(self, height: float) -> None:
        if not self._connected:
            return
        if height != self.height:
            self.height = height
            self._dirty = True

    def set_total(self, total_count: int) -> None:
        if total_count != self.total_count:
            self.total_count = total_count
            self._dirty = True

    def flush_frame(self) -> Optional[VisibilityResult]:
        if not self._dirty:
            return self.result
        self._dirty = False
        self.recomputations += 1
        result = compute_visibility(self.height, self.total_count, self.item_height, self.gap)
        if result != self.result:
            logger.log("LAYOUT", "Visibility for height {}: {}", self.height, result)
            self.result = result
            if self.on_change:
                self.on_change(result)
        return self.result

    def disconnect(self) -> None:
        self._connected = False
        self._dirty = False
