"""Dial geometry and the edge-drag state machine.

Pointer coordinates are in dial units: the dial is a DIAL_SIZE square with
midnight at the top and time running clockwise. Hosts convert screen pixels
to dial units and pass the ratio as `units_per_pixel`.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Callable, Literal

from focusdial.models import Session
from focusdial.segments import DaySegment, segments_for_day
from focusdial.store import SessionStore
from focusdial.timeutil import MS_PER_DAY

logger = logging.getLogger(__name__)

DIAL_SIZE = 1000
DIAL_CENTER = DIAL_SIZE / 2
DIAL_RADIUS = DIAL_SIZE * 0.45

EDGE_PX = 8  # edge grab tolerance in screen pixels
DRAG_PX = 6  # motion before a candidate becomes a drag
DRAG_MIN_MS = 1000
DELETE_THRESH_MS = 5000

TAU = 2 * math.pi

Edge = Literal["start", "end"]


def angle_from_point(x: float, y: float, cx: float = DIAL_CENTER, cy: float = DIAL_CENTER) -> float:
    """Clockwise angle from twelve o'clock, in [0, 2pi)."""
    return (math.atan2(y - cy, x - cx) + math.pi / 2) % TAU


def angle_from_time(ms: int, day_start: int) -> float:
    return (ms - day_start) / 1000 / 86400 * TAU


def time_from_angle(theta: float, day_start: int) -> int:
    """Wall-clock instant for an angle, rounded to the whole second."""
    seconds = theta / TAU * 86400
    return day_start + int(math.floor(seconds + 0.5)) * 1000


def _clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))


class DragState(enum.Enum):
    IDLE = "idle"
    CANDIDATE = "candidate"
    DRAGGING = "dragging"


class PointerOutcome(enum.Enum):
    NONE = "none"
    TOGGLED = "toggled"
    EDITED = "edited"
    DELETED = "deleted"


@dataclass
class Hover:
    """What the pointer is over: a segment (and maybe one of its edges) or not."""

    seg_index: int = -1
    theta: float = 0.0
    near_edge: Edge | None = None

    @property
    def on_segment(self) -> bool:
        return self.seg_index >= 0


@dataclass
class ActiveDrag:
    seg_index: int
    edge: Edge
    day_start: int
    session_index: int
    is_running: bool
    orig_start: int
    orig_end: int | None
    cur_start: int
    cur_end: int | None


class DragEditor:
    """Pointer state machine: idle -> candidate -> dragging -> idle.

    Nothing is written to the store until pointer-up. While dragging, every
    segment query goes through the preview session list so neighbours and
    clamps see the edit in progress.
    """

    def __init__(self, store: SessionStore, request_redraw: Callable[[], None] | None = None) -> None:
        self.store = store
        self.request_redraw = request_redraw or (lambda: None)
        self.hover = Hover()
        self.candidate: tuple[int, Edge] | None = None
        self.drag: ActiveDrag | None = None
        self._click_pending = False
        self._down_xy = (0.0, 0.0)

    @property
    def state(self) -> DragState:
        if self.drag is not None:
            return DragState.DRAGGING
        if self.candidate is not None:
            return DragState.CANDIDATE
        return DragState.IDLE

    # ---------- preview ----------

    def preview_sessions(self) -> list[Session]:
        sessions = self.store.sessions
        if self.drag is None:
            return sessions
        d = self.drag
        preview = list(sessions)
        # model_construct: the preview may momentarily hold bounds the validator rejects
        preview[d.session_index] = Session.model_construct(
            start=d.cur_start, end=d.cur_end, tag=sessions[d.session_index].tag
        )
        return preview

    def preview_segments(self, day_start: int | None = None) -> list[DaySegment]:
        start = self.store.today_start() if day_start is None else day_start
        return segments_for_day(start, self.preview_sessions(), self.store.now())

    # ---------- hover ----------

    def find_hover(self, x: float, y: float, units_per_pixel: float = 1.0) -> Hover:
        theta = angle_from_point(x, y)
        day_start = self.store.today_start()
        segs = self.preview_segments(day_start)
        threshold = EDGE_PX * units_per_pixel / DIAL_RADIUS

        hover = Hover(theta=theta)
        for i, seg in enumerate(segs):
            a0 = angle_from_time(seg.start_ms, day_start)
            a1 = angle_from_time(seg.end_ms, day_start)
            if a0 <= theta <= a1:
                hover.seg_index = i
                ds, de = abs(theta - a0), abs(theta - a1)
                if min(ds, de) < threshold:
                    hover.near_edge = "start" if ds < de else "end"
                break

        if hover.near_edge == "end":
            sess = self.store.sessions[segs[hover.seg_index].session_index]
            if sess.end is None:
                hover.near_edge = None

        self.hover = hover
        return hover

    def hovered_segment(self) -> DaySegment | None:
        if not self.hover.on_segment:
            return None
        segs = self.preview_segments()
        if self.hover.seg_index >= len(segs):
            return None
        return segs[self.hover.seg_index]

    def hovered_time(self) -> int:
        return time_from_angle(self.hover.theta, self.store.today_start())

    # ---------- clamping ----------

    def capped_edge_time(self, seg_index: int, edge: Edge, desired: int, day_start: int) -> int:
        """Clamp an edge between its neighbours, the day window and now."""
        now = self.store.now()
        day_end = day_start + MS_PER_DAY
        segs = segments_for_day(day_start, self.preview_sessions(), now)
        if not 0 <= seg_index < len(segs):
            return desired
        seg = segs[seg_index]
        if edge == "start":
            lo = day_start
            if seg_index > 0:
                lo = max(lo, segs[seg_index - 1].end_ms)
            hi = min(seg.end_ms, now)
        else:
            lo = seg.start_ms
            hi = min(day_end, now)
            if seg_index < len(segs) - 1:
                hi = min(hi, segs[seg_index + 1].start_ms)
        return _clamp(desired, lo, hi)

    def _update_preview(self, theta: float) -> None:
        d = self.drag
        assert d is not None
        now = self.store.now()
        capped = self.capped_edge_time(d.seg_index, d.edge, time_from_angle(theta, d.day_start), d.day_start)
        if d.edge == "start":
            max_start = (d.cur_end if d.cur_end is not None else now) - DRAG_MIN_MS
            d.cur_start = _clamp(capped, d.day_start, max_start)
        else:
            min_end = d.cur_start + DRAG_MIN_MS
            d.cur_end = _clamp(capped, min_end, min(d.day_start + MS_PER_DAY, now))
        self.request_redraw()

    # ---------- pointer events ----------

    def pointer_down(self, x: float, y: float, units_per_pixel: float = 1.0) -> None:
        hover = self.find_hover(x, y, units_per_pixel)
        self._down_xy = (x, y)
        self._click_pending = True
        self.candidate = (hover.seg_index, hover.near_edge) if hover.on_segment and hover.near_edge else None

    def pointer_move(self, x: float, y: float, units_per_pixel: float = 1.0) -> Hover:
        hover = self.find_hover(x, y, units_per_pixel)
        if self._click_pending and math.hypot(x - self._down_xy[0], y - self._down_xy[1]) >= DRAG_PX:
            # Moved too far to count as a click
            self._click_pending = False
            if self.candidate is not None and self.drag is None:
                self._begin_drag(self.candidate)
        if self.drag is not None:
            self._update_preview(hover.theta)
        return hover

    def _begin_drag(self, candidate: tuple[int, Edge]) -> None:
        seg_index, edge = candidate
        day_start = self.store.today_start()
        segs = self.preview_segments(day_start)
        if seg_index >= len(segs):
            self.candidate = None
            return
        session_index = segs[seg_index].session_index
        session = self.store.sessions[session_index]
        is_running = session.end is None
        if is_running and edge == "end":
            self.candidate = None
            return
        self.drag = ActiveDrag(
            seg_index=seg_index,
            edge=edge,
            day_start=day_start,
            session_index=session_index,
            is_running=is_running,
            orig_start=session.start,
            orig_end=session.end,
            cur_start=session.start,
            cur_end=None if is_running else session.end,
        )
        self._click_pending = False
        logger.debug("Dragging %s edge of session %d", edge, session_index)

    def pointer_up(self, x: float, y: float) -> PointerOutcome:
        if self.drag is not None:
            return self._finish_drag()
        outcome = PointerOutcome.NONE
        if self._click_pending and math.hypot(x - DIAL_CENTER, y - DIAL_CENTER) <= DIAL_RADIUS:
            self.store.toggle()
            outcome = PointerOutcome.TOGGLED
        self._click_pending = False
        self.candidate = None
        return outcome

    def _finish_drag(self) -> PointerOutcome:
        d = self.drag
        assert d is not None
        segs = segments_for_day(d.day_start, self.preview_sessions(), self.store.now())
        seg = next((s for s in segs if s.session_index == d.session_index), None)
        self.drag = None
        self.candidate = None
        if seg is None or seg.duration_ms <= DELETE_THRESH_MS:
            self.store.delete_day_slice(d.session_index, d.day_start)
            outcome = PointerOutcome.DELETED
        else:
            self.store.commit_session_edit(d.session_index, d.cur_start, None if d.is_running else d.cur_end)
            outcome = PointerOutcome.EDITED
        self.request_redraw()
        return outcome

    def pointer_leave(self) -> None:
        """Pointer left the dial: reset to idle without committing anything."""
        self.hover = Hover()
        self.candidate = None
        self.drag = None
        self._click_pending = False
        self.request_redraw()
