import pytest

from daybook.visibility import VisibilityWatcher, compute_visibility, rows_that_fit


def test_overflow_control_takes_a_row():
    result = compute_visibility(100, 5, item_height=24, gap=4)

    assert rows_that_fit(100, 24, 4) == 3
    assert result.visible == 2
    assert result.remaining == 3
    assert result.show_overflow


def test_everything_fits_without_overflow():
    result = compute_visibility(100, 3, item_height=24, gap=4)

    assert (result.visible, result.remaining, result.show_overflow) == (3, 0, False)


def test_fewer_events_than_rows():
    result = compute_visibility(100, 1, item_height=24, gap=4)

    assert (result.visible, result.remaining) == (1, 0)


def test_unmeasured_container_is_unknown_not_zero():
    assert compute_visibility(None, 4, item_height=24, gap=4) is None


def test_collapsed_container_shows_only_overflow():
    result = compute_visibility(0, 4, item_height=24, gap=4)

    assert (result.visible, result.remaining) == (0, 4)


def test_rows_fit_and_never_shrink_as_container_grows():
    for total in range(0, 9):
        previous = 0
        for height in range(0, 301):
            result = compute_visibility(height, total, item_height=24, gap=4)
            assert result.visible * (24 + 4) - 4 <= height or result.visible == 0
            assert result.visible >= previous
            previous = result.visible


def test_taller_overflow_control_reserves_enough_room():
    result = compute_visibility(100, 5, item_height=24, gap=4, overflow_height=40)

    assert result.visible * 28 + 40 <= 100
    assert result.visible == 2


def test_rejects_non_positive_row_pitch():
    with pytest.raises(ValueError):
        compute_visibility(100, 2, item_height=0, gap=0)


def test_watcher_coalesces_resizes_per_frame():
    changes = []
    watcher = VisibilityWatcher(item_height=24, gap=4, total_count=5, on_change=changes.append)

    assert watcher.flush_frame() is None
    for height in (60, 80, 90, 100):
        watcher.observe(height)
    result = watcher.flush_frame()

    assert watcher.recomputations == 1
    assert (result.visible, result.remaining) == (2, 3)
    assert changes == [result]

    watcher.observe(100)
    watcher.flush_frame()
    assert watcher.recomputations == 1


def test_watcher_reports_only_changes():
    changes = []
    watcher = VisibilityWatcher(item_height=24, gap=4, total_count=2, on_change=changes.append)

    watcher.observe(100)
    watcher.flush_frame()
    watcher.observe(101)
    watcher.flush_frame()
    watcher.set_total(6)
    watcher.flush_frame()

    assert watcher.recomputations == 3
    assert [(r.visible, r.remaining) for r in changes] == [(2, 0), (2, 4)]


def test_disconnected_watcher_ignores_resizes():
    watcher = VisibilityWatcher(item_height=24, gap=4, total_count=1)
    watcher.observe(100)
    watcher.flush_frame()
    watcher.disconnect()

    watcher.observe(10)

    assert watcher.flush_frame().visible == 1
