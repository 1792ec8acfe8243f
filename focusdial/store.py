"""SessionStore: the owned state container and its named commands.

All mutation goes through the methods below. Each mutating command notifies
subscribers once when state actually changed, so persistence and redraw can
hang off the store without it knowing about either.
"""

from __future__ import annotations

import enum
import logging
import random
import re
import time
from typing import Callable, Literal

from focusdial.badges import recompute_day
from focusdial.errors import InvalidDayKeyError
from focusdial.models import (
    SORT_MODES,
    AppState,
    BreakLog,
    Session,
    Streak,
    default_state,
)
from focusdial.segments import (
    find_break_log_covering,
    find_gap_at,
    gaps_for_day,
    realign_break_logs,
    segments_for_day,
    visible_end,
)
from focusdial.streak import MIN_SESSION_MS, compute_streak
from focusdial.tagcolor import AccentMeta, TagColorEngine, normalize_tag_key
from focusdial.timeutil import MS_PER_DAY, day_key, parse_day_key, start_of_day

logger = logging.getLogger(__name__)

GOAL_STEP_MINUTES = 30
MAX_GOAL_MINUTES = 24 * 60

_DEFAULT_NAME_RE = re.compile(r"^Session\s+(\d+)\b", re.IGNORECASE)

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ChangeKind(enum.Enum):
    LOCAL = "local"  # a command mutated state; persist it
    ADOPTED = "adopted"  # state replaced from another instance; do not re-save


Listener = Callable[[ChangeKind], None]


class SessionStore:
    """Owns an AppState and exposes every mutation as a command.

    Not thread-safe. Intended for a single cooperative event loop.
    """

    def __init__(
        self,
        state: AppState | None = None,
        *,
        clock: Clock = system_clock,
        min_session_ms: int = MIN_SESSION_MS,
    ) -> None:
        self.state = state if state is not None else default_state()
        self.clock = clock
        self.min_session_ms = min_session_ms
        self.colors = TagColorEngine()
        self._listeners: list[Listener] = []
        self._closed_out = False

    # ---------- subscriptions ----------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, kind: ChangeKind) -> None:
        for listener in list(self._listeners):
            listener(kind)

    def _commit(self) -> None:
        self.refresh_derived()
        self._notify(ChangeKind.LOCAL)

    # ---------- queries ----------

    def now(self) -> int:
        return self.clock()

    def today_start(self) -> int:
        return start_of_day(self.now())

    @property
    def sessions(self) -> list[Session]:
        return self.state.sessions

    def running_session(self) -> Session | None:
        last = self.state.sessions[-1] if self.state.sessions else None
        return last if last is not None and last.end is None else None

    def is_running(self) -> bool:
        return self.running_session() is not None

    # ---------- start / stop ----------

    def start_session(self) -> bool:
        if self.is_running():
            return False
        self.state.sessions.append(Session(start=self.now(), end=None))
        self.assign_default_session_names()
        self.realign_break_logs()
        self._commit()
        return True

    def _close_running(self) -> None:
        last = self.running_session()
        if last is None:
            return
        now = self.now()
        if now - last.start < self.min_session_ms:
            logger.debug("Discarding %dms session (below %dms)", now - last.start, self.min_session_ms)
            self.state.sessions.pop()
        else:
            last.end = now

    def stop_session(self) -> bool:
        if not self.is_running():
            return False
        self._close_running()
        self.realign_break_logs()
        self._commit()
        return True

    def toggle(self) -> bool:
        """Stop if running, otherwise start. Returns True if now running."""
        if self.is_running():
            self.stop_session()
        else:
            self.start_session()
        return self.is_running()

    def close_out(self) -> bool:
        """Close the running session when the host is going away.

        Fires at most once per store lifetime. Returns True if it ran.
        """
        if self._closed_out:
            return False
        self._closed_out = True
        self._close_running()
        self._commit()
        return True

    def clear_day(self, day_start: int | None = None) -> None:
        """Remove one day's slice of every session, its break logs and badges."""
        start = self.today_start() if day_start is None else day_start
        end = start + MS_PER_DAY
        if self.is_running():
            self._close_running()
        now = self.now()
        kept: list[Session] = []
        for sess in self.state.sessions:
            s, e = sess.start, sess.effective_end(now)
            if e <= start or s >= end:
                kept.append(sess)
                continue
            if s < start:
                kept.append(Session(start=s, end=start, tag=sess.tag))
            if e > end:
                kept.append(Session(start=end, end=e, tag=sess.tag))
        self.state.sessions = kept
        self.state.break_logs = [b for b in self.state.break_logs if b.end <= start or b.start >= end]
        key = day_key(start)
        self.state.badges = [b for b in self.state.badges if b.date != key]
        self._commit()

    # ---------- goal / theme / sorting ----------

    def set_goal(self, minutes: float) -> int:
        goal = int(max(0, min(MAX_GOAL_MINUTES, round(minutes))))
        if goal != self.state.goal_minutes:
            self.state.goal_minutes = goal
            self._commit()
        return goal

    def adjust_goal(self, steps: int) -> int:
        return self.set_goal(self.state.goal_minutes + steps * GOAL_STEP_MINUTES)

    def toggle_theme(self) -> str:
        self.state.theme = "light" if self.state.theme == "dark" else "dark"
        self.colors.clear_cache()
        self._commit()
        return self.state.theme

    def cycle_sort(self, panel: Literal["work", "break"]) -> str:
        attr = "tag_sort_work" if panel == "work" else "tag_sort_break"
        current = getattr(self.state, attr)
        nxt = SORT_MODES[(SORT_MODES.index(current) + 1) % len(SORT_MODES)]
        setattr(self.state, attr, nxt)
        self._commit()
        return nxt

    # ---------- tagging ----------

    def assign_default_session_names(self, day_start: int | None = None) -> bool:
        """Name every untagged session touching the day 'Session N'."""
        start = self.today_start() if day_start is None else day_start
        now = self.now()
        touching = [
            s for s in self.state.sessions if s.effective_end(now) > start and s.start < start + MS_PER_DAY
        ]
        touching.sort(key=lambda s: max(s.start, start))

        used: set[int] = set()
        for sess in touching:
            match = _DEFAULT_NAME_RE.match(sess.tag or "")
            if match:
                used.add(int(match[1]))

        changed = False
        next_num = max(used, default=0)
        for sess in touching:
            if sess.tag:
                continue
            candidate = next_num + 1
            while candidate in used:
                candidate += 1
            next_num = candidate
            used.add(candidate)
            sess.tag = f"Session {candidate}"
            changed = True
        return changed

    def realign_break_logs(self, day_start: int | None = None) -> bool:
        start = self.today_start() if day_start is None else day_start
        return realign_break_logs(self.state.break_logs, start, self.state.sessions, self.now())

    def tag_session(self, session_index: int, text: str | None) -> bool:
        """Set a session's tag. None means the prompt was cancelled."""
        if text is None or not 0 <= session_index < len(self.state.sessions):
            return False
        sess = self.state.sessions[session_index]
        sess.tag = text.strip() or None
        if sess.tag is None:
            self.assign_default_session_names()
        self._commit()
        return True

    def break_log_at(self, t: int, day_start: int | None = None) -> tuple[BreakLog | None, object]:
        """Find the gap at t and the break log tagging it, if any."""
        start = self.today_start() if day_start is None else day_start
        now = self.now()
        if t < start or t > visible_end(start, now):
            return None, None
        gaps = gaps_for_day(start, segments_for_day(start, self.state.sessions, now), now)
        gap = find_gap_at(gaps, t)
        if gap is None:
            return None, None
        return find_break_log_covering(self.state.break_logs, gap, t), gap

    def tag_gap(self, t: int, text: str | None, day_start: int | None = None) -> bool:
        """Tag (or untag, with blank text) the gap containing instant t."""
        if text is None:
            return False
        existing, gap = self.break_log_at(t, day_start)
        if gap is None:
            return False
        value = text.strip()
        if existing is not None:
            if not value:
                self.state.break_logs.remove(existing)
            else:
                existing.tag = value
                if existing.tag_ts is None:
                    existing.tag_ts = t
                existing.start, existing.end = gap.start_ms, gap.end_ms
        elif value:
            self.state.break_logs.append(BreakLog(start=gap.start_ms, end=gap.end_ms, tag=value, tag_ts=t))
        else:
            return False
        self.realign_break_logs(day_start)
        self._commit()
        return True

    def rename_work_tag(self, old_tag: str, new_tag: str) -> bool:
        """Rename a work tag on today's sessions, carrying its color override."""
        start = self.today_start()
        end = start + MS_PER_DAY
        now = self.now()
        new_tag = new_tag.strip()
        changed = False
        for sess in self.state.sessions:
            if not (sess.effective_end(now) > start and sess.start < end):
                continue
            if (sess.tag or "").strip() == old_tag:
                sess.tag = new_tag or None
                changed = True
        if not changed:
            return False
        old_key, new_key = normalize_tag_key(old_tag), normalize_tag_key(new_tag)
        if old_key and old_key in self.state.tag_colors:
            preserved = self.state.tag_colors.pop(old_key)
            if new_key:
                self.state.tag_colors[new_key] = preserved
        if not new_tag:
            self.assign_default_session_names()
        self.colors.clear_cache()
        self._commit()
        return True

    def rename_break_tag(self, old_tag: str, new_tag: str) -> bool:
        """Rename today's break tag; an empty name deletes those break logs."""
        start = self.today_start()
        end = start + MS_PER_DAY
        new_tag = new_tag.strip()
        changed = False
        for i in range(len(self.state.break_logs) - 1, -1, -1):
            log = self.state.break_logs[i]
            anchor = log.tag_ts if log.tag_ts is not None else log.start
            if not start <= anchor < end:
                continue
            if log.tag.strip() == old_tag:
                if new_tag:
                    log.tag = new_tag
                else:
                    del self.state.break_logs[i]
                changed = True
        if changed:
            self._commit()
        return changed

    # ---------- interval edits ----------

    def commit_session_edit(self, session_index: int, start: int, end: int | None) -> bool:
        if not 0 <= session_index < len(self.state.sessions):
            return False
        sess = self.state.sessions[session_index]
        sess.start = start
        sess.end = end
        self.assign_default_session_names()
        self.realign_break_logs()
        self._commit()
        return True

    def delete_day_slice(self, session_index: int, day_start: int) -> bool:
        """Delete the part of a session that falls on one day.

        A session crossing both midnights is split in two.
        """
        if not 0 <= session_index < len(self.state.sessions):
            return False
        day_end = day_start + MS_PER_DAY
        sess = self.state.sessions[session_index]
        s, e = sess.start, sess.effective_end(self.now())
        if e <= day_start or s >= day_end:
            return False
        if s >= day_start and e <= day_end:
            del self.state.sessions[session_index]
        elif s < day_start and e <= day_end:
            sess.end = day_start
        elif s >= day_start:
            sess.start = day_end
        else:
            sess.end = day_start
            self.state.sessions.append(Session(start=day_end, end=e, tag=sess.tag))
            self.state.sessions.sort(key=lambda x: x.start)
        self.assign_default_session_names()
        self.realign_break_logs()
        self._commit()
        return True

    # ---------- colors ----------

    def set_tag_color(self, tag: str, color: str | None) -> bool:
        """Set (or with None, clear) a tag's color override."""
        key = normalize_tag_key(tag)
        if not key:
            return False
        if color:
            self.state.tag_colors[key] = color
        else:
            self.state.tag_colors.pop(key, None)
        self.colors.clear_cache()
        self._commit()
        return True

    def randomize_tag_color(
        self,
        tag: str,
        accent: str | AccentMeta | None,
        *,
        rng: random.Random | None = None,
    ) -> str | None:
        key = normalize_tag_key(tag)
        if not key:
            return None
        color = self.colors.randomize(key, accent, self.state.tag_colors, rng=rng)
        self.set_tag_color(key, color)
        return color

    def color_for_tag(self, tag: str | None, fallback_key: str | None, accent: str | AccentMeta | None) -> str:
        return self.colors.color_for_tag(tag, fallback_key, accent, self.state.tag_colors)

    # ---------- ignored days ----------

    def ignore_day(self, key: str) -> bool:
        if parse_day_key(key) is None:
            raise InvalidDayKeyError(key)
        key = key.strip()
        if key in self.state.ignored_days:
            return False
        self.state.ignored_days.append(key)
        self._commit()
        return True

    def unignore_day(self, key: str) -> bool:
        if parse_day_key(key) is None:
            raise InvalidDayKeyError(key)
        key = key.strip()
        if key not in self.state.ignored_days:
            return False
        self.state.ignored_days = [d for d in self.state.ignored_days if d != key]
        self._commit()
        return True

    # ---------- derived caches ----------

    def refresh_streak(self) -> Streak:
        self.state.streak = compute_streak(
            self.state.sessions,
            self.now(),
            min_ms=self.min_session_ms,
            ignored_days=self.state.ignored_days,
        )
        return self.state.streak

    def sync_badges_for_day(self, day_start: int | None = None) -> bool:
        start = self.today_start() if day_start is None else day_start
        badges, changed = recompute_day(
            self.state.badges, start, self.state.sessions, self.state.goal_minutes, self.now()
        )
        if changed:
            self.state.badges = badges
        return changed

    def refresh_derived(self) -> bool:
        """Recompute streak and today's badges. Returns True if either moved."""
        before = self.state.streak
        after = self.refresh_streak()
        badges_changed = self.sync_badges_for_day()
        return badges_changed or before != after

    def housekeep(self) -> bool:
        """Periodic upkeep so default names and derived caches track the clock."""
        changed = self.assign_default_session_names()
        changed = self.realign_break_logs() or changed
        changed = self.refresh_derived() or changed
        if changed:
            self._notify(ChangeKind.LOCAL)
        return changed

    # ---------- wholesale replacement ----------

    def replace_state(self, incoming: AppState) -> None:
        """Adopt another instance's document wholesale."""
        self.state = incoming
        self.colors.clear_cache()
        self._notify(ChangeKind.ADOPTED)
