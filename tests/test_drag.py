"""Tests for dial geometry and the drag editor state machine."""

import math

import pytest

from focusdial.drag import (
    DIAL_CENTER,
    DragEditor,
    DragState,
    PointerOutcome,
    angle_from_point,
    angle_from_time,
    time_from_angle,
)
from focusdial.models import Session

from helpers import make_store, point_at, ts

DAY = ts(0)


def scenario_editor(now=ts(13), sessions=None):
    if sessions is None:
        sessions = [Session(start=ts(9), end=ts(10, 30), tag="A"), Session(start=ts(11), end=ts(12), tag="B")]
    store = make_store(now, sessions)
    redraws = []
    editor = DragEditor(store, request_redraw=lambda: redraws.append(1))
    return store, editor, redraws


def drag(editor, frm: int, to: int) -> PointerOutcome:
    editor.pointer_down(*point_at(frm))
    editor.pointer_move(*point_at(to))
    return editor.pointer_up(*point_at(to))


class TestGeometry:
    """Tests for angle and time conversion."""

    def test_midnight_at_top(self):
        """Verify angle zero points at twelve o'clock."""
        assert angle_from_point(DIAL_CENTER, 100) == pytest.approx(0)

    def test_clockwise(self):
        """Test that angles grow clockwise."""
        assert angle_from_point(900, DIAL_CENTER) == pytest.approx(math.pi / 2)
        assert angle_from_point(100, DIAL_CENTER) == pytest.approx(3 * math.pi / 2)

    def test_time_round_trip(self):
        assert angle_from_time(ts(6), DAY) == pytest.approx(math.pi / 2)
        assert time_from_angle(math.pi, DAY) == ts(12)

    def test_time_rounds_to_second(self):
        """Verify times from angles snap to the nearest second."""
        theta = angle_from_time(ts(12) + 600, DAY)
        assert time_from_angle(theta, DAY) == ts(12, 0, 1)


class TestHover:
    """Tests for find_hover."""

    def test_inside_segment(self):
        """Verify hovering mid-segment selects it with no edge."""
        _, editor, _ = scenario_editor()
        hover = editor.find_hover(*point_at(ts(9, 45)))
        assert hover.seg_index == 0
        assert hover.near_edge is None

    def test_near_edges(self):
        """Test that points close to a boundary grab that edge."""
        _, editor, _ = scenario_editor()
        assert editor.find_hover(*point_at(ts(10, 29))).near_edge == "end"
        assert editor.find_hover(*point_at(ts(11, 1))).near_edge == "start"

    def test_gap(self):
        """Verify a gap hover reports no segment but still a time."""
        _, editor, _ = scenario_editor()
        hover = editor.find_hover(*point_at(ts(10, 45)))
        assert not hover.on_segment
        assert editor.hovered_segment() is None
        assert editor.hovered_time() == ts(10, 45)

    def test_edge_tolerance_scales_with_pixels(self):
        """Test that the edge tolerance grows with units per pixel."""
        _, editor, _ = scenario_editor()
        assert editor.find_hover(*point_at(ts(10, 20))).near_edge is None
        assert editor.find_hover(*point_at(ts(10, 20)), units_per_pixel=3.0).near_edge == "end"

    def test_running_end_edge_not_grabbable(self):
        """Verify the moving end of a running session cannot be grabbed."""
        _, editor, _ = scenario_editor(now=ts(12), sessions=[Session(start=ts(9), end=None)])
        hover = editor.find_hover(*point_at(ts(11, 59)))
        assert hover.on_segment
        assert hover.near_edge is None
        assert editor.find_hover(*point_at(ts(9, 1))).near_edge == "start"


class TestDragging:
    """Tests for the candidate / dragging lifecycle."""

    def test_small_motion_stays_candidate(self):
        """Test that motion under the drag threshold does not start a drag."""
        _, editor, _ = scenario_editor()
        x, y = point_at(ts(10, 29))
        editor.pointer_down(x, y)
        assert editor.state is DragState.CANDIDATE
        editor.pointer_move(x + 2, y + 2)
        assert editor.state is DragState.CANDIDATE

    def test_preview_does_not_touch_store(self):
        """Verify the store is untouched until release."""
        store, editor, redraws = scenario_editor()
        editor.pointer_down(*point_at(ts(10, 29)))
        editor.pointer_move(*point_at(ts(10, 45)))
        assert editor.state is DragState.DRAGGING
        assert editor.preview_segments()[0].end_ms == ts(10, 45)
        assert store.sessions[0].end == ts(10, 30)
        assert redraws

    def test_commit_on_release(self):
        """Verify releasing a drag commits the edge."""
        store, editor, _ = scenario_editor()
        assert drag(editor, ts(10, 29), ts(10, 45)) is PointerOutcome.EDITED
        assert store.sessions[0].end == ts(10, 45)
        assert editor.state is DragState.IDLE

    def test_end_clamped_at_next_segment(self):
        """Test that an end edge stops at the following segment."""
        store, editor, _ = scenario_editor()
        drag(editor, ts(10, 29), ts(11, 30))
        assert store.sessions[0].end == ts(11)

    def test_end_clamped_at_now(self):
        """Test that an end edge cannot pass the current time."""
        store, editor, _ = scenario_editor()
        drag(editor, ts(11, 59), ts(15))
        assert store.sessions[1].end == ts(13)

    def test_start_clamped_at_previous_segment(self):
        store, editor, _ = scenario_editor()
        drag(editor, ts(11, 1), ts(10))
        assert store.sessions[1].start == ts(10, 30)

    def test_shrinking_to_nothing_deletes(self):
        """Verify shrinking a segment under the threshold deletes it."""
        store, editor, _ = scenario_editor()
        assert drag(editor, ts(10, 29), ts(8)) is PointerOutcome.DELETED
        assert [s.tag for s in store.sessions] == ["B"]

    def test_running_session_start_drag(self):
        """Verify the start of a running session can be dragged and it keeps running."""
        store, editor, _ = scenario_editor(now=ts(12), sessions=[Session(start=ts(9), end=None)])
        assert drag(editor, ts(9, 1), ts(8, 30)) is PointerOutcome.EDITED
        assert store.sessions[0].start == ts(8, 30)
        assert store.sessions[0].end is None

    def test_pointer_leave_cancels_drag(self):
        """Test that leaving the dial cancels without committing."""
        store, editor, _ = scenario_editor()
        editor.pointer_down(*point_at(ts(10, 29)))
        editor.pointer_move(*point_at(ts(10, 45)))
        editor.pointer_leave()
        assert editor.state is DragState.IDLE
        assert store.sessions[0].end == ts(10, 30)
        assert editor.pointer_up(*point_at(ts(10, 45))) is PointerOutcome.NONE


class TestClicks:
    """Tests for click-to-toggle."""

    def test_click_inside_dial_toggles(self):
        """Verify a click inside the dial starts a session."""
        store, editor, _ = scenario_editor()
        x, y = point_at(ts(15), radius=200)
        editor.pointer_down(x, y)
        assert editor.pointer_up(x, y) is PointerOutcome.TOGGLED
        assert store.is_running()

    def test_click_outside_dial_ignored(self):
        store, editor, _ = scenario_editor()
        editor.pointer_down(5, 5)
        assert editor.pointer_up(5, 5) is PointerOutcome.NONE
        assert not store.is_running()

    def test_jitter_still_counts_as_click(self):
        store, editor, _ = scenario_editor()
        x, y = point_at(ts(15), radius=200)
        editor.pointer_down(x, y)
        editor.pointer_move(x + 2, y + 2)
        assert editor.pointer_up(x + 2, y + 2) is PointerOutcome.TOGGLED

    def test_drag_across_empty_dial_does_not_toggle(self):
        """Test that sweeping across an empty dial is not taken as a click."""
        store, editor, _ = scenario_editor(sessions=[])
        editor.pointer_down(*point_at(ts(3), radius=300))
        editor.pointer_move(*point_at(ts(6), radius=300))
        assert editor.pointer_up(*point_at(ts(6), radius=300)) is PointerOutcome.NONE
        assert not store.is_running()
        assert editor.state is DragState.IDLE

    def test_sweep_from_segment_middle_does_not_toggle(self):
        """Verify moving away from a segment interior neither drags nor toggles."""
        store, editor, _ = scenario_editor()
        editor.pointer_down(*point_at(ts(9, 45)))
        editor.pointer_move(*point_at(ts(15)))
        assert editor.pointer_up(*point_at(ts(15))) is PointerOutcome.NONE
        assert not store.is_running()
        assert store.sessions[0].end == ts(10, 30)
