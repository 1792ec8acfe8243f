"""Exceptions raised by Focus Dial."""

from __future__ import annotations


class FocusDialError(Exception):
    """Base exception for Focus Dial errors."""

    pass


class InvalidDayKeyError(FocusDialError):
    """Raised when a day key is not a valid YYYY-MM-DD date."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Invalid date format: {key}. Use YYYY-MM-DD.")
        self.key = key


class UnknownTagError(FocusDialError):
    """Raised when a rename targets a tag that is not used today."""

    def __init__(self, tag: str) -> None:
        super().__init__(f"No tag '{tag}' found for today")
        self.tag = tag


class SegmentNotFoundError(FocusDialError):
    """Raised when a segment or gap index does not exist for the day."""

    pass
