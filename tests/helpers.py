"""Shared helpers for building deterministic sessions and clocks."""

from __future__ import annotations

import math
from datetime import datetime

from focusdial.drag import DIAL_CENTER, angle_from_time
from focusdial.models import AppState, Session, default_state
from focusdial.store import SessionStore


def ts(hour: int = 0, minute: int = 0, second: int = 0, *, day: int = 25, month: int = 1, year: int = 2025) -> int:
    """Local wall-clock time as epoch ms (defaults to Jan 25, 2025)."""
    return int(datetime(year, month, day, hour, minute, second).timestamp() * 1000)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_session(start: int, end: int | None, tag: str | None = None) -> Session:
    return Session(start=start, end=end, tag=tag)


def make_state(sessions: list[Session] | None = None, **fields) -> AppState:
    state = default_state("test-client")
    state.sessions = list(sessions or [])
    for name, value in fields.items():
        setattr(state, name, value)
    return state


def make_store(now: int, sessions: list[Session] | None = None, **fields) -> SessionStore:
    return SessionStore(make_state(sessions, **fields), clock=FixedClock(now))


def point_at(ms: int, radius: float = 400) -> tuple[float, float]:
    """Dial coordinates for a wall-clock instant on the default day."""
    theta = angle_from_time(ms, ts(0))
    return DIAL_CENTER + radius * math.sin(theta), DIAL_CENTER - radius * math.cos(theta)
