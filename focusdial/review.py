"""Multi-day review: daily cards, weekly and monthly roll-ups, tag shares."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from focusdial.models import AppState
from focusdial.timeutil import (
    MS_PER_MINUTE,
    add_days,
    day_key,
    iso_week,
    month_key,
    start_of_day,
    start_of_week,
)

UNTAGGED = "Untagged"


@dataclass
class DayReview:
    day_start: int
    date: str
    work_ms: int
    break_ms: int
    tagged_break_ms: int
    session_count: int
    longest_session_ms: int
    longest_session_tag: str | None
    first_start: int
    last_end: int
    goal_met: bool
    tag_durations: dict[str | None, int] = field(default_factory=dict)
    break_tag_durations: dict[str, int] = field(default_factory=dict)
    todos_completed: int = 0


@dataclass
class PeriodReview:
    """A week (keyed by its Monday) or a month (keyed 'YYYY-MM')."""

    key: str
    start_ms: int
    work_ms: int = 0
    break_ms: int = 0
    session_count: int = 0
    active_days: int = 0
    goal_hits: int = 0
    tag_durations: dict[str | None, int] = field(default_factory=dict)
    break_tag_durations: dict[str, int] = field(default_factory=dict)

    def add(self, day: DayReview) -> None:
        self.work_ms += day.work_ms
        self.break_ms += day.break_ms
        self.session_count += day.session_count
        self.active_days += 1
        if day.goal_met:
            self.goal_hits += 1
        _merge(self.tag_durations, day.tag_durations)
        _merge(self.break_tag_durations, day.break_tag_durations)

    @property
    def top_tag(self) -> tuple[str | None, int] | None:
        return pick_top_tag(self.tag_durations)


@dataclass
class TagShare:
    tag: str | None
    ms: int
    share: float

    @property
    def label(self) -> str:
        return self.tag or UNTAGGED


@dataclass
class ReviewData:
    days: list[DayReview]
    weeks: list[PeriodReview]
    months: list[PeriodReview]
    tags: list[TagShare]
    break_tags: list[TagShare]
    work_ms: int = 0
    break_ms: int = 0
    tagged_break_ms: int = 0
    sessions: int = 0
    active_days: int = 0
    goal_hits: int = 0
    goal_ms: int = 0
    todos_completed: int = 0
    longest_day: tuple[int, str | None] = (0, None)
    longest_session: tuple[int, str | None, str | None] = (0, None, None)


def _merge(target: dict, source: dict) -> None:
    for key, value in source.items():
        target[key] = target.get(key, 0) + value


def _display_tag(tag: Any) -> str | None:
    if isinstance(tag, str) and tag.strip():
        return tag.strip()
    return None


def pick_top_tag(durations: dict) -> tuple[str | None, int] | None:
    best_tag, best_ms = None, 0
    for tag, ms in durations.items():
        if ms > best_ms:
            best_tag, best_ms = tag, ms
    return (best_tag, best_ms) if best_ms > 0 else None


def _shares(durations: dict, total_ms: int) -> list[TagShare]:
    items = [TagShare(tag, ms, ms / total_ms if total_ms > 0 else 0.0) for tag, ms in durations.items() if ms > 0]
    return sorted(items, key=lambda it: it.ms, reverse=True)


def sessions_for_day(state: AppState, day_start: int, now_ms: int) -> list[tuple[int, int, str | None]]:
    day_end = add_days(day_start, 1)
    result = []
    for sess in state.sessions:
        raw_end = sess.effective_end(now_ms)
        if raw_end <= day_start or sess.start >= day_end:
            continue
        start = max(sess.start, day_start)
        end = min(raw_end, day_end, now_ms)
        if end > start:
            result.append((start, end, _display_tag(sess.tag)))
    result.sort(key=lambda it: it[0])
    return result


def break_tags_for_day(state: AppState, day_start: int, now_ms: int) -> dict[str, int]:
    """Tagged break time anchored on this day."""
    day_end = add_days(day_start, 1)
    result: dict[str, int] = {}
    for log in state.break_logs:
        if log.end <= day_start or log.start >= day_end:
            continue
        if log.tag_ts is not None and not day_start <= log.tag_ts < day_end:
            continue
        start, end = max(log.start, day_start), min(log.end, day_end, now_ms)
        tag = _display_tag(log.tag)
        if end <= start or tag is None:
            continue
        result[tag] = result.get(tag, 0) + end - start
    return result


def completed_todos_for_day(state: AppState, day_start: int) -> int:
    day_end = add_days(day_start, 1)
    count = 0
    for todo in state.todos:
        completed_at = todo.get("completedAt")
        if not todo.get("done") or isinstance(completed_at, bool) or not isinstance(completed_at, (int, float)):
            continue
        if day_start <= completed_at < day_end:
            count += 1
    return count


def build_day(state: AppState, day_start: int, now_ms: int, goal_ms: int) -> DayReview | None:
    """Review one day, or None when nothing was worked."""
    day_sessions = sessions_for_day(state, day_start, now_ms)
    work_ms = sum(end - start for start, end, _ in day_sessions)
    if work_ms <= 0:
        return None

    tag_durations: dict[str | None, int] = {}
    longest_ms, longest_tag = 0, None
    for start, end, tag in day_sessions:
        duration = end - start
        tag_durations[tag] = tag_durations.get(tag, 0) + duration
        if duration > longest_ms:
            longest_ms, longest_tag = duration, tag

    break_ms = sum(
        max(0, cur[0] - prev[1]) for prev, cur in zip(day_sessions, day_sessions[1:])
    )
    break_tags = break_tags_for_day(state, day_start, now_ms)

    return DayReview(
        day_start=day_start,
        date=day_key(day_start),
        work_ms=work_ms,
        break_ms=break_ms,
        tagged_break_ms=sum(break_tags.values()),
        session_count=len(day_sessions),
        longest_session_ms=longest_ms,
        longest_session_tag=longest_tag,
        first_start=day_sessions[0][0],
        last_end=day_sessions[-1][1],
        goal_met=goal_ms > 0 and work_ms >= goal_ms,
        tag_durations=tag_durations,
        break_tag_durations=break_tags,
        todos_completed=completed_todos_for_day(state, day_start),
    )


def _earliest(state: AppState, now_ms: int) -> int:
    stamps = [s.start for s in state.sessions]
    for log in state.break_logs:
        stamps.append(log.start)
        if log.tag_ts is not None:
            stamps.append(log.tag_ts)
    return min(stamps, default=now_ms)


def build_review(state: AppState, now_ms: int) -> ReviewData:
    """Aggregate every active day from the first record through today.

    Days, weeks and months are returned newest first.
    """
    goal_ms = max(0, state.goal_minutes) * MS_PER_MINUTE
    day = start_of_day(_earliest(state, now_ms))
    last_day = start_of_day(now_ms)

    days: list[DayReview] = []
    weeks: dict[int, PeriodReview] = {}
    months: dict[str, PeriodReview] = {}
    tag_totals: dict[str | None, int] = {}
    break_totals: dict[str, int] = {}
    data = ReviewData(days=days, weeks=[], months=[], tags=[], break_tags=[], goal_ms=goal_ms)

    while day <= last_day:
        review = build_day(state, day, now_ms, goal_ms)
        if review is not None:
            days.append(review)
            data.work_ms += review.work_ms
            data.break_ms += review.break_ms
            data.tagged_break_ms += review.tagged_break_ms
            data.sessions += review.session_count
            data.todos_completed += review.todos_completed
            data.active_days += 1
            if review.goal_met:
                data.goal_hits += 1
            if review.work_ms > data.longest_day[0]:
                data.longest_day = (review.work_ms, review.date)
            if review.longest_session_ms > data.longest_session[0]:
                data.longest_session = (review.longest_session_ms, review.date, review.longest_session_tag)
            _merge(tag_totals, review.tag_durations)
            _merge(break_totals, review.break_tag_durations)

            week_start = start_of_week(day)
            if week_start not in weeks:
                year, week = iso_week(week_start)
                weeks[week_start] = PeriodReview(key=f"{year}-W{week:02d}", start_ms=week_start)
            weeks[week_start].add(review)

            mkey = month_key(day)
            if mkey not in months:
                months[mkey] = PeriodReview(key=mkey, start_ms=day)
            months[mkey].add(review)
        day = add_days(day, 1)

    days.sort(key=lambda d: d.day_start, reverse=True)
    data.weeks = sorted(weeks.values(), key=lambda w: w.start_ms, reverse=True)
    data.months = sorted(months.values(), key=lambda m: m.start_ms, reverse=True)
    data.tags = _shares(tag_totals, data.work_ms)
    data.break_tags = _shares(break_totals, data.tagged_break_ms)
    return data
