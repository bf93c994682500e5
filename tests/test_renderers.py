from datetime import date, datetime, timedelta

import yaml
from dateutil import tz

from daybook.models import CalendarView
from daybook.renderers import (
    format_event_time,
    new_event_draft,
    period_label,
    render_agenda,
    render_day,
    render_month,
    render_view,
    render_week,
    shift_reference,
    to_dict,
    visible_days,
)

UTC = tz.UTC


def at(y, mo, d, h=0, mi=0):
    return datetime(y, mo, d, h, mi, tzinfo=UTC)


def test_week_window_respects_week_start():
    wed = date(2024, 3, 6)

    sunday = visible_days(CalendarView.WEEK, wed, week_start="sunday")
    monday = visible_days(CalendarView.WEEK, wed, week_start="monday")

    assert (sunday[0], sunday[-1]) == (date(2024, 3, 3), date(2024, 3, 9))
    assert (monday[0], monday[-1]) == (date(2024, 3, 4), date(2024, 3, 10))


def test_month_window_covers_whole_weeks():
    days = visible_days(CalendarView.MONTH, date(2024, 3, 15), week_start="sunday")

    assert days[0] == date(2024, 2, 25)
    assert days[-1] == date(2024, 4, 6)
    assert len(days) % 7 == 0


def test_day_and_agenda_windows():
    ref = date(2024, 3, 6)

    assert visible_days("day", ref) == [ref]
    agenda = visible_days(CalendarView.AGENDA, ref, agenda_days=30)
    assert len(agenda) == 30 and agenda[0] == ref


def test_navigation_steps_by_view_period():
    ref = date(2024, 1, 31)

    assert shift_reference("month", ref, 1) == date(2024, 2, 29)
    assert shift_reference("week", ref, -1) == date(2024, 1, 24)
    assert shift_reference("day", ref, 1) == date(2024, 2, 1)
    assert shift_reference("agenda", ref, 1, agenda_days=30) == date(2024, 3, 1)


def test_period_labels():
    assert period_label("month", date(2024, 3, 6)) == "March 2024"
    assert period_label("week", date(2024, 2, 28), week_start="sunday") == "Feb - Mar 2024"


def test_render_day_splits_band_and_grid(make_event, layout):
    events = [
        make_event("standup", at(2024, 3, 5, 9), at(2024, 3, 5, 9, 30)),
        make_event("offsite", at(2024, 3, 4, 8), at(2024, 3, 6, 17)),
    ]

    model = render_day(events, date(2024, 3, 5), layout, UTC)

    assert model.error is None
    assert [s.event.id for s in model.all_day] == ["offsite"]
    assert [p.event.id for p in model.timed] == ["standup"]
    assert model.timed[0].top == 9 * 64


def test_bad_day_does_not_block_the_week(make_event, layout):
    events = [
        make_event("broken", at(2024, 3, 5, 10), at(2024, 3, 5, 9)),
        make_event("fine", at(2024, 3, 6, 10), at(2024, 3, 6, 11)),
    ]

    week = render_week(events, date(2024, 3, 6), layout, UTC, week_start="sunday")

    by_day = {d.day: d for d in week.days}
    assert by_day[date(2024, 3, 5)].error
    assert by_day[date(2024, 3, 5)].timed == []
    assert by_day[date(2024, 3, 6)].error is None
    assert [p.event.id for p in by_day[date(2024, 3, 6)].timed] == ["fine"]


def test_week_band_marks_continuations(make_event, layout):
    carried = make_event("carried", at(2024, 3, 1, 9), at(2024, 3, 4, 12))
    inside = make_event("inside", at(2024, 3, 5), at(2024, 3, 6), all_day=True)

    week = render_week([inside, carried], date(2024, 3, 6), layout, UTC, week_start="sunday")

    band = {b.event.id: b for b in week.band}
    assert (band["carried"].first_column, band["carried"].last_column) == (0, 1)
    assert not band["carried"].is_first_day and band["carried"].is_last_day
    assert band["carried"].show_title_on == date(2024, 3, 3)
    assert (band["inside"].first_column, band["inside"].last_column) == (2, 2)
    assert band["inside"].is_first_day and band["inside"].is_last_day
    assert [b.event.id for b in week.band] == ["carried", "inside"]


def test_month_cells_defer_until_measured(make_event, layout):
    events = [make_event(f"e{i}", at(2024, 3, 5, 8 + i), at(2024, 3, 5, 9 + i)) for i in range(5)]

    unmeasured = render_month(events, date(2024, 3, 1), None, layout, UTC, "sunday")
    measured = render_month(events, date(2024, 3, 1), 100, layout, UTC, "sunday")

    cell = unmeasured.weeks[1][2]
    assert cell.day == date(2024, 3, 5)
    assert cell.visibility is None and cell.visible_events is None
    cell = measured.weeks[1][2]
    assert (cell.visibility.visible, cell.visibility.remaining) == (2, 3)
    assert [s.event.id for s in cell.visible_events] == ["e0", "e1"]
    assert not measured.weeks[0][0].in_month


def test_month_cell_lists_continuations_first(make_event, layout):
    trip = make_event("trip", at(2024, 3, 4, 18), at(2024, 3, 6, 10))
    lunch = make_event("lunch", at(2024, 3, 5, 12), at(2024, 3, 5, 13))

    model = render_month([lunch, trip], date(2024, 3, 1), 200, layout, UTC, "sunday")

    tuesday = model.weeks[1][2]
    assert [s.event.id for s in tuesday.events] == ["trip", "lunch"]
    assert not tuesday.events[0].is_first_day
    monday = model.weeks[1][1]
    assert [s.event.id for s in monday.events] == ["trip"]
    assert monday.events[0].is_first_day


def test_agenda_skips_empty_days(make_event):
    events = [
        make_event("a", at(2024, 3, 6, 9), at(2024, 3, 6, 10)),
        make_event("b", at(2024, 3, 9, 9), at(2024, 3, 9, 10)),
        make_event("too-late", at(2024, 5, 1, 9), at(2024, 5, 1, 10)),
    ]

    days = render_agenda(events, date(2024, 3, 6), agenda_days=30, tz_local=UTC, include_empty=False)

    assert [(d.day, [e.id for e in d.events]) for d in days] == [
        (date(2024, 3, 6), ["a"]),
        (date(2024, 3, 9), ["b"]),
    ]


def test_event_time_labels(make_event):
    short = make_event("s", at(2024, 3, 5, 10, 5), at(2024, 3, 5, 10, 35))
    long = make_event("l", at(2024, 3, 5, 10), at(2024, 3, 5, 11, 30))
    all_day = make_event("d", at(2024, 3, 5), at(2024, 3, 6), all_day=True)

    assert format_event_time(all_day, 1440, UTC) == "All day"
    assert format_event_time(short, 30, UTC).count(":") == 1
    assert " - " in format_event_time(long, 90, UTC)


def test_new_event_draft_is_snapped_and_one_hour():
    draft = new_event_draft(at(2024, 3, 5, 10, 8))

    assert draft.start == at(2024, 3, 5, 10, 15)
    assert draft.end - draft.start == timedelta(hours=1)
    assert draft.id and draft.title == ""


def test_models_export_to_plain_yaml(make_event, layout):
    events = [
        make_event("a", at(2024, 3, 5, 9), at(2024, 3, 5, 10)),
        make_event("b", at(2024, 3, 5, 9, 30), at(2024, 3, 5, 11)),
    ]

    data = to_dict(render_view("week", events, date(2024, 3, 5), layout=layout, tz_local=UTC, week_start="sunday"))
    text = yaml.safe_dump(data)

    tuesday = data["days"][2]
    assert tuesday["day"] == "2024-03-05"
    assert [p["column"] for p in tuesday["timed"]] == [0, 1]
    assert tuesday["timed"][0]["event"]["start"] == "2024-03-05T09:00:00+00:00"
    assert "column: 1" in text

    month = to_dict(render_view("month", events, date(2024, 3, 5), layout=layout, tz_local=UTC,
                                week_start="sunday", cell_content_height=100))
    assert month["weeks"][1][2]["show_overflow"] is False
