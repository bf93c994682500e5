import pytest
from dateutil import tz

from daybook.layout import get_layout_config
from daybook.models import CalendarEvent

TZ = tz.UTC


@pytest.fixture
def tz_local():
    return TZ


@pytest.fixture
def layout():
    return get_layout_config(
        hour_height=64, event_height=24, event_gap=4, week_cells_height=64,
        start_hour=0, end_hour=24, column_indent=0.1, z_base=10,
    )


@pytest.fixture
def make_event():
    def _make(event_id, start, end, title=None, all_day=False, **kwargs):
        return CalendarEvent(
            id=event_id,
            title=title or event_id,
            start=start,
            end=end,
            all_day=all_day,
            **kwargs,
        )
    return _make
