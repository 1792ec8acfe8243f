"""Per-day achievement badges, recomputed from that day's segments."""

from __future__ import annotations

from typing import Sequence

from focusdial.models import Badge, Session
from focusdial.segments import segments_for_day
from focusdial.timeutil import MS_PER_DAY, MS_PER_HOUR, MS_PER_MINUTE, day_key

EARLY_BIRD_MS = 7 * MS_PER_HOUR + 30 * MS_PER_MINUTE  # 07:30
SOLID_HOUR_MS = 60 * MS_PER_MINUTE
DEEP_WORK_MS = 180 * MS_PER_MINUTE
BADGE_CAP = 60

# Display order and labels
BADGE_ORDER = ("early-bird", "solid-hour", "deep-work", "goal-complete")
BADGE_LABELS = {
    "solid-hour": "Solid Hour",
    "early-bird": "Early Bird",
    "deep-work": "Deep Work",
    "goal-complete": "Goal Complete",
}


def eligible_badges(
    day_start: int,
    sessions: Sequence[Session],
    goal_minutes: float,
    now_ms: int,
) -> set[str]:
    segs = segments_for_day(day_start, sessions, now_ms)
    eligible: set[str] = set()

    for seg in segs:
        if seg.duration_ms >= SOLID_HOUR_MS:
            eligible.add("solid-hour")
        if seg.duration_ms >= DEEP_WORK_MS:
            eligible.add("deep-work")

    starts = [s.start for s in sessions if day_start <= s.start < day_start + MS_PER_DAY]
    if starts and min(starts) - day_start < EARLY_BIRD_MS:
        eligible.add("early-bird")

    goal_ms = (goal_minutes or 0) * MS_PER_MINUTE
    worked = sum(seg.duration_ms for seg in segs)
    if goal_ms > 0 and worked >= goal_ms:
        eligible.add("goal-complete")

    return eligible


def sync_badges(
    badges: list[Badge],
    day: str,
    eligible: set[str],
    *,
    cap: int = BADGE_CAP,
) -> tuple[list[Badge], bool]:
    """Revoke stale and append newly earned badges for one day.

    Returns:
        Tuple of (new badge list, whether anything changed). Only the most
        recent `cap` records are kept.
    """
    current = {b.id for b in badges if b.date == day}
    kept = [b for b in badges if b.date != day or b.id in eligible]
    changed = len(kept) != len(badges)
    for badge_id in BADGE_ORDER:
        if badge_id in eligible and badge_id not in current:
            kept.append(Badge(id=badge_id, date=day))
            changed = True
    if len(kept) > cap:
        kept = kept[len(kept) - cap :]
        changed = True
    return kept, changed


def badges_for_day(badges: Sequence[Badge], day: str) -> list[Badge]:
    """Unique badges earned on `day`, in display order."""
    seen: dict[str, Badge] = {}
    for badge in badges:
        if badge.date == day and badge.id not in seen:
            seen[badge.id] = badge
    return sorted(seen.values(), key=lambda b: BADGE_ORDER.index(b.id))


def recompute_day(
    badges: list[Badge],
    day_start: int,
    sessions: Sequence[Session],
    goal_minutes: float,
    now_ms: int,
) -> tuple[list[Badge], bool]:
    eligible = eligible_badges(day_start, sessions, goal_minutes, now_ms)
    return sync_badges(badges, day_key(day_start), eligible)
