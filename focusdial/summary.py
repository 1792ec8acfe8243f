"""Derived per-day view model: everything a renderer needs for one frame."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from focusdial.badges import BADGE_LABELS, badges_for_day
from focusdial.models import BreakLog, Session, Streak
from focusdial.segments import Gap, gaps_for_day, segments_for_day
from focusdial.store import SessionStore
from focusdial.tagcolor import AccentMeta, session_fallback_key
from focusdial.timeutil import MS_PER_DAY, MS_PER_MINUTE, day_key


@dataclass
class TagTotal:
    tag: str
    ms: int
    last_used: int
    color: str | None = None

    @property
    def minutes(self) -> float:
        return self.ms / MS_PER_MINUTE


@dataclass
class SegmentView:
    start_ms: int
    end_ms: int
    session_index: int
    tag: str | None
    color: str


@dataclass
class DialSummary:
    day: str
    day_start: int
    now_ms: int
    worked_ms: int
    goal_minutes: int
    running: bool
    live_ms: int
    break_ms: int
    welcome: str | None
    streak: Streak
    segments: list[SegmentView] = field(default_factory=list)
    gaps: list[Gap] = field(default_factory=list)
    badges: list[str] = field(default_factory=list)
    work_tags: list[TagTotal] = field(default_factory=list)
    break_tags: list[TagTotal] = field(default_factory=list)

    @property
    def worked_minutes(self) -> float:
        return self.worked_ms / MS_PER_MINUTE

    @property
    def remaining_minutes(self) -> float:
        return max(0.0, self.goal_minutes - self.worked_minutes)

    @property
    def goal_reached(self) -> bool:
        return self.remaining_minutes <= 0

    @property
    def progress(self) -> float:
        if self.goal_minutes <= 0:
            return 1.0
        return min(1.0, self.worked_minutes / self.goal_minutes)


def sort_tag_totals(items: list[TagTotal], mode: str) -> list[TagTotal]:
    if mode == "time-asc":
        return sorted(items, key=lambda it: it.ms)
    if mode == "recent-desc":
        return sorted(items, key=lambda it: it.last_used, reverse=True)
    if mode == "recent-asc":
        return sorted(items, key=lambda it: it.last_used)
    return sorted(items, key=lambda it: it.ms, reverse=True)


def work_tag_totals(sessions: Sequence[Session], day_start: int, now_ms: int) -> list[TagTotal]:
    """Today's time per work tag, with the latest end as last-used."""
    day_end = day_start + MS_PER_DAY
    totals: dict[str, TagTotal] = {}
    for sess in sessions:
        end = sess.effective_end(now_ms)
        ms = max(0, min(end, day_end) - max(sess.start, day_start))
        if ms <= 0 or not sess.tag:
            continue
        item = totals.get(sess.tag)
        if item is None:
            totals[sess.tag] = TagTotal(sess.tag, ms, end)
        else:
            item.ms += ms
            item.last_used = max(item.last_used, end)
    return list(totals.values())


def break_tag_totals(break_logs: Sequence[BreakLog], day_start: int, now_ms: int) -> list[TagTotal]:
    """Today's time per break tag, clipped to now."""
    limit = min(now_ms, day_start + MS_PER_DAY)
    totals: dict[str, TagTotal] = {}
    for log in break_logs:
        ms = max(0, min(log.end, limit) - max(log.start, day_start))
        if ms <= 0:
            continue
        item = totals.get(log.tag)
        if item is None:
            totals[log.tag] = TagTotal(log.tag, ms, log.end)
        else:
            item.ms += ms
            item.last_used = max(item.last_used, log.end)
    return list(totals.values())


def last_stop_time(sessions: Sequence[Session], day_start: int, now_ms: int) -> int:
    """Latest closed session end today, or midnight when none."""
    last = day_start
    for sess in sessions:
        if sess.end is not None and day_start <= sess.end <= min(now_ms, day_start + MS_PER_DAY):
            last = max(last, sess.end)
    return last


def welcome_text(sessions: Sequence[Session], day_start: int, now_ms: int) -> str | None:
    if segments_for_day(day_start, sessions, now_ms):
        return None
    if any(s.effective_end(now_ms) < day_start for s in sessions):
        return "WELCOME BACK!"
    return "WELCOME!"


def build_summary(
    store: SessionStore,
    *,
    accent: str | AccentMeta | None = None,
    sessions: Sequence[Session] | None = None,
) -> DialSummary:
    """Assemble today's view model.

    `sessions` may be a drag preview; totals and colors then follow the edit
    in progress.
    """
    state = store.state
    now = store.now()
    day_start = store.today_start()
    sessions = state.sessions if sessions is None else sessions

    segs = segments_for_day(day_start, sessions, now)
    seg_views = []
    for seg in segs:
        source = state.sessions[seg.session_index] if seg.session_index < len(state.sessions) else None
        fallback = session_fallback_key(source.start if source is not None else seg.start_ms)
        tag = seg.tag.strip() if seg.tag else ""
        seg_views.append(
            SegmentView(seg.start_ms, seg.end_ms, seg.session_index, seg.tag, store.color_for_tag(tag, fallback, accent))
        )

    running = store.running_session()
    work_tags = sort_tag_totals(work_tag_totals(sessions, day_start, now), state.tag_sort_work)
    for item in work_tags:
        item.color = store.color_for_tag(item.tag, item.tag, accent)
    break_tags = sort_tag_totals(break_tag_totals(state.break_logs, day_start, now), state.tag_sort_break)

    key = day_key(day_start)
    return DialSummary(
        day=key,
        day_start=day_start,
        now_ms=now,
        worked_ms=sum(s.duration_ms for s in segs),
        goal_minutes=state.goal_minutes,
        running=running is not None,
        live_ms=now - running.start if running is not None else 0,
        break_ms=0 if running is not None else now - last_stop_time(sessions, day_start, now),
        welcome=welcome_text(sessions, day_start, now),
        streak=state.streak,
        segments=seg_views,
        gaps=gaps_for_day(day_start, segs, now),
        badges=[BADGE_LABELS[b.id] for b in badges_for_day(state.badges, key)],
        work_tags=work_tags,
        break_tags=break_tags,
    )
