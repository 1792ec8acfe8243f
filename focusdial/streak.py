"""Daily streak derivation from the full session history."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Sequence

from focusdial.models import Session, Streak
from focusdial.timeutil import add_days, day_key, day_number, parse_day_key, start_of_day

MIN_SESSION_MS = 15_000


def merged_total(intervals: list[tuple[int, int]]) -> int:
    """Sum of the union of [start, end) intervals."""
    if not intervals:
        return 0
    ordered = sorted(intervals)
    total = 0
    cur_start, cur_end = ordered[0]
    for start, end in ordered[1:]:
        if start <= cur_end:
            cur_end = max(cur_end, end)
        else:
            total += cur_end - cur_start
            cur_start, cur_end = start, end
    return total + cur_end - cur_start


def intervals_by_day(sessions: Sequence[Session], now_ms: int) -> dict[int, list[tuple[int, int]]]:
    """Split every session at local midnights.

    Returns:
        Dict mapping day start (epoch ms) to the clipped intervals on that day.
    """
    result: defaultdict[int, list[tuple[int, int]]] = defaultdict(list)
    for sess in sessions:
        start = sess.start
        end = sess.effective_end(now_ms)
        if end <= start:
            continue
        day = start_of_day(start)
        last_day = start_of_day(end)
        while day <= last_day:
            next_day = add_days(day, 1)
            a, b = max(start, day), min(end, next_day)
            if b > a:
                result[day].append((a, b))
            day = next_day
    return dict(result)


def _count_backwards(days: set[int], start: int) -> int:
    count = 0
    d = start
    while d in days:
        count += 1
        d -= 1
    return count


def compute_streak(
    sessions: Sequence[Session],
    now_ms: int,
    *,
    min_ms: int = MIN_SESSION_MS,
    ignored_days: Iterable[str] = (),
) -> Streak:
    """Compute current and best streaks of qualifying days.

    A day qualifies when its merged worked time reaches min_ms and it is not
    ignored. The current streak counts back from today, or from yesterday
    when today has no qualifying work yet.
    """
    ignored = {day_number(d) for d in (parse_day_key(k) for k in ignored_days) if d is not None}

    qualifying: dict[int, int] = {}
    for day_start, intervals in intervals_by_day(sessions, now_ms).items():
        if merged_total(intervals) < min_ms:
            continue
        num = day_number(day_start)
        if num in ignored:
            continue
        qualifying[num] = day_start

    if not qualifying:
        return Streak(current=0, best=0, last_day=None)

    nums = sorted(qualifying)
    best = run = 0
    prev = None
    for num in nums:
        run = run + 1 if prev is not None and num - prev == 1 else 1
        best = max(best, run)
        prev = num

    day_set = set(nums)
    today = day_number(now_ms)
    current = 0
    if today not in ignored:
        if today in day_set:
            current = _count_backwards(day_set, today)
        elif today - 1 in day_set:
            current = _count_backwards(day_set, today - 1)

    return Streak(current=current, best=best, last_day=day_key(qualifying[nums[-1]]))
