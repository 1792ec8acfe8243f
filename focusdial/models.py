"""Persisted document models and tolerant (de)serialization."""

from __future__ import annotations

import json
import logging
import math
import uuid
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from focusdial.tagcolor import normalize_tag_key

logger = logging.getLogger(__name__)

VERSION = 4
STORE_KEY = "focusdial.state"
DEFAULT_GOAL_MINUTES = 240

SORT_MODES = ("time-desc", "time-asc", "recent-desc", "recent-asc")
BADGE_IDS = ("solid-hour", "early-bird", "deep-work", "goal-complete")

SortMode = Literal["time-desc", "time-asc", "recent-desc", "recent-asc"]
BadgeId = Literal["solid-hour", "early-bird", "deep-work", "goal-complete"]
Theme = Literal["light", "dark"]


def _coerce_tag(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def _round_ms(value: Any) -> Any:
    """Round fractional epoch milliseconds; anything else is left to validation."""
    if _is_number(value):
        return int(math.floor(value + 0.5))
    return value


class Session(BaseModel):
    """One interval of focused work. `end is None` while running."""

    model_config = ConfigDict(extra="ignore")

    start: int
    end: int | None = None
    tag: str | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _times(cls, value: Any) -> Any:
        return _round_ms(value)

    @field_validator("tag", mode="before")
    @classmethod
    def _tag(cls, value: Any) -> str | None:
        return _coerce_tag(value)

    @model_validator(mode="after")
    def _check_order(self) -> Session:
        if self.end is not None and self.end <= self.start:
            raise ValueError("session end must be after start")
        return self

    @property
    def is_open(self) -> bool:
        return self.end is None

    def effective_end(self, now_ms: int) -> int:
        return now_ms if self.end is None else self.end


class BreakLog(BaseModel):
    """A user tag attached to the gap between two sessions.

    `tag_ts` anchors the tag inside its gap so it can be re-located after
    the surrounding sessions move.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    start: int
    end: int
    tag: str
    tag_ts: int | None = Field(default=None, alias="tagTs")

    @field_validator("start", "end", "tag_ts", mode="before")
    @classmethod
    def _times(cls, value: Any) -> Any:
        return _round_ms(value)

    @field_validator("tag", mode="before")
    @classmethod
    def _tag(cls, value: Any) -> str:
        tag = _coerce_tag(value)
        if tag is None:
            raise ValueError("break log requires a tag")
        return tag

    @model_validator(mode="after")
    def _anchor(self) -> BreakLog:
        if self.end <= self.start:
            raise ValueError("break log end must be after start")
        if self.tag_ts is None:
            self.tag_ts = int(math.floor((self.start + self.end) / 2 + 0.5))
        self.tag_ts = max(self.start, min(self.end, self.tag_ts))
        return self


class Streak(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    current: int = Field(default=0, ge=0)
    best: int = Field(default=0, ge=0)
    last_day: str | None = Field(default=None, alias="lastDay")


class Badge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: BadgeId
    date: str


class Meta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    updated_at: int = Field(default=0, alias="updatedAt")
    client_id: str = Field(alias="clientId")


class AppState(BaseModel):
    """The whole persisted document shared between instances."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = VERSION
    sessions: list[Session] = Field(default_factory=list)
    break_logs: list[BreakLog] = Field(default_factory=list, alias="breakLogs")
    goal_minutes: int = Field(default=DEFAULT_GOAL_MINUTES, alias="goalMinutes")
    theme: Theme = "light"
    streak: Streak = Field(default_factory=Streak)
    badges: list[Badge] = Field(default_factory=list)
    tag_colors: dict[str, str] = Field(default_factory=dict, alias="tagColors")
    todos: list[dict[str, Any]] = Field(default_factory=list)
    ignored_days: list[str] = Field(default_factory=list, alias="ignoredDays")
    meta: Meta
    tag_sort_work: SortMode = Field(default="time-desc", alias="tagSortWork")
    tag_sort_break: SortMode = Field(default="time-desc", alias="tagSortBreak")


def new_client_id() -> str:
    return uuid.uuid4().hex


def default_state(client_id: str | None = None) -> AppState:
    return AppState(meta=Meta(updated_at=0, client_id=client_id or new_client_id()))


_M = TypeVar("_M", bound=BaseModel)


def _valid_items(raw: Any, model: type[_M]) -> list[_M]:
    """Validate each list item independently, dropping the malformed ones."""
    if not isinstance(raw, list):
        return []
    items: list[_M] = []
    for item in raw:
        try:
            items.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug("Dropping malformed %s: %s", model.__name__, e.errors()[:1])
    return items


def normalize_sessions(sessions: list[Session]) -> list[Session]:
    """Order sessions by start and keep at most one open session, last.

    An open session that is not chronologically last has no recoverable end,
    so it is dropped.
    """
    ordered = sorted(sessions, key=lambda s: s.start)
    result = []
    for i, sess in enumerate(ordered):
        if sess.end is None and i != len(ordered) - 1:
            logger.warning("Dropping stale open session started at %s", sess.start)
            continue
        result.append(sess)
    return result


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def normalize_meta(raw: Any, client_id: str) -> Meta:
    raw = raw if isinstance(raw, dict) else {}
    updated_at = raw.get("updatedAt")
    saved_client = raw.get("clientId")
    return Meta(
        updated_at=int(updated_at) if _is_number(updated_at) else 0,
        client_id=saved_client if isinstance(saved_client, str) else client_id,
    )


def hydrate_state(raw: Any, *, client_id: str | None = None) -> AppState:
    """Build an AppState from an untrusted decoded document.

    Never raises: every missing or malformed field falls back to its default
    and unknown top-level fields are dropped.
    """
    base = default_state(client_id)
    if not isinstance(raw, dict):
        return base

    base.sessions = normalize_sessions(_valid_items(raw.get("sessions"), Session))
    base.break_logs = _valid_items(raw.get("breakLogs"), BreakLog)

    goal = raw.get("goalMinutes")
    if _is_number(goal):
        base.goal_minutes = int(math.floor(goal + 0.5))

    base.theme = "dark" if raw.get("theme") == "dark" else "light"

    try:
        if isinstance(raw.get("streak"), dict):
            base.streak = Streak.model_validate(raw["streak"])
    except ValidationError:
        logger.debug("Malformed streak cache, resetting")

    base.badges = _valid_items(raw.get("badges"), Badge)

    colors = raw.get("tagColors")
    if isinstance(colors, dict):
        for key, value in colors.items():
            if not isinstance(value, str) or not value:
                continue
            norm = normalize_tag_key(key)
            if norm:
                base.tag_colors[norm] = value

    todos = raw.get("todos")
    if isinstance(todos, list):
        base.todos = [t for t in todos if isinstance(t, dict)]

    ignored = raw.get("ignoredDays")
    if isinstance(ignored, list):
        base.ignored_days = [d for d in ignored if isinstance(d, str) and d.strip()]

    if raw.get("tagSortWork") in SORT_MODES:
        base.tag_sort_work = raw["tagSortWork"]
    if raw.get("tagSortBreak") in SORT_MODES:
        base.tag_sort_break = raw["tagSortBreak"]

    base.meta = normalize_meta(raw.get("meta"), base.meta.client_id)
    base.version = VERSION
    return base


def state_to_dict(state: AppState) -> dict[str, Any]:
    return state.model_dump(mode="json", by_alias=True)


def serialize_state(state: AppState) -> str:
    """Encode the document as the JSON stored in the storage slot."""
    return json.dumps(state_to_dict(state), separators=(",", ":"))


def read_state_from_value(raw_value: str | None, *, client_id: str | None = None) -> AppState | None:
    """Parse a raw stored value; None when empty or not JSON."""
    if not raw_value:
        return None
    try:
        decoded = json.loads(raw_value)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Stored value is not valid JSON")
        return None
    return hydrate_state(decoded, client_id=client_id)
