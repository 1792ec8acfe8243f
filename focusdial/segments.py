"""Day segmentation: work segments and the complementary break gaps.

Segments and gaps partition `[day_start, min(now, day_start + 24h)]`; tag
totals, streaks and coloring all rely on that.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from focusdial.models import BreakLog, Session
from focusdial.timeutil import MS_PER_DAY

# Tolerance for matching a break log to a gap when tagTs misses
BREAK_MATCH_TOLERANCE_MS = 1000


@dataclass(frozen=True)
class DaySegment:
    start_ms: int
    end_ms: int
    session_index: int
    tag: str | None

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass(frozen=True)
class Gap:
    start_ms: int
    end_ms: int

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    def contains(self, t: int) -> bool:
        return self.start_ms <= t <= self.end_ms


def visible_end(day_start: int, now_ms: int) -> int:
    """End of the visible window: now, or midnight for past days."""
    return min(now_ms, day_start + MS_PER_DAY)


def segments_for_day(
    day_start: int,
    sessions: Sequence[Session],
    now_ms: int,
) -> list[DaySegment]:
    """Clip every session to the day window and to now.

    Sessions that miss the window are omitted. Returned segments are ordered
    by start; `session_index` refers back into `sessions`.
    """
    day_end = day_start + MS_PER_DAY
    limit = min(day_end, now_ms)
    segs = []
    for i, sess in enumerate(sessions):
        s, e = sess.start, sess.effective_end(now_ms)
        if e <= day_start or s >= day_end:
            continue
        a, b = max(s, day_start), min(e, limit)
        if b > a:
            segs.append(DaySegment(a, b, i, sess.tag))
    segs.sort(key=lambda seg: seg.start_ms)
    return segs


def gaps_for_day(day_start: int, segments: Sequence[DaySegment], now_ms: int) -> list[Gap]:
    """Walk ordered segments left to right and emit the uncovered intervals."""
    clamp_end = visible_end(day_start, now_ms)
    gaps = []
    cursor = day_start
    for seg in segments:
        if seg.start_ms > cursor:
            gaps.append(Gap(cursor, min(seg.start_ms, clamp_end)))
        cursor = max(cursor, seg.end_ms)
        if cursor >= clamp_end:
            break
    if cursor < clamp_end:
        gaps.append(Gap(cursor, clamp_end))
    return [g for g in gaps if g.end_ms > g.start_ms]


def worked_ms(day_start: int, sessions: Sequence[Session], now_ms: int) -> int:
    """Total clipped session time for the day (overlaps counted per session)."""
    return sum(seg.duration_ms for seg in segments_for_day(day_start, sessions, now_ms))


def find_gap_at(gaps: Sequence[Gap], t: int) -> Gap | None:
    return next((g for g in gaps if g.contains(t)), None)


def find_break_log_covering(
    break_logs: Sequence[BreakLog],
    gap: Gap,
    t: int,
    *,
    tolerance_ms: int = BREAK_MATCH_TOLERANCE_MS,
) -> BreakLog | None:
    """Find the break log tagging this gap.

    Matches by anchor (tag_ts inside the gap) first, then by a log covering t
    whose bounds sit within the gap widened by tolerance_ms.
    """
    for log in break_logs:
        if log.tag_ts is not None and gap.start_ms <= log.tag_ts <= gap.end_ms:
            return log
    for log in break_logs:
        if (
            log.start <= t <= log.end
            and log.start >= gap.start_ms - tolerance_ms
            and log.end <= gap.end_ms + tolerance_ms
        ):
            return log
    return None


def realign_break_logs(
    break_logs: list[BreakLog],
    day_start: int,
    sessions: Sequence[Session],
    now_ms: int,
) -> bool:
    """Snap today's break logs onto the current gaps, in place.

    A log whose anchor no longer falls in any gap has been absorbed by a
    session edit and is removed. Returns True if anything changed.
    """
    gaps = gaps_for_day(day_start, segments_for_day(day_start, sessions, now_ms), now_ms)
    limit = visible_end(day_start, now_ms)
    changed = False
    for i in range(len(break_logs) - 1, -1, -1):
        log = break_logs[i]
        if log.tag_ts is None:
            log.tag_ts = (log.start + log.end) // 2
        if log.tag_ts < day_start or log.tag_ts > limit:
            continue
        gap = find_gap_at(gaps, log.tag_ts)
        if gap is None:
            del break_logs[i]
            changed = True
        elif log.start != gap.start_ms or log.end != gap.end_ms:
            log.start, log.end = gap.start_ms, gap.end_ms
            changed = True
    return changed
