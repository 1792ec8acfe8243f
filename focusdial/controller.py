"""Keyboard bindings and the text-input capability.

The controller wires a SessionStore, a DragEditor and a RedrawScheduler
together the way a host UI would, without depending on any UI toolkit.
"""

from __future__ import annotations

import logging
from typing import Callable

from focusdial.drag import DragEditor
from focusdial.scheduler import RedrawScheduler
from focusdial.store import ChangeKind, SessionStore

logger = logging.getLogger(__name__)

# (prompt message, current value) -> new text, or None when cancelled
TextInput = Callable[[str, str], "str | None"]

WORK_PROMPT = "Tag this work session (text):"
BREAK_PROMPT = "Tag this break (text):"


def _cancel(message: str, current: str) -> None:
    return None


class DialController:
    def __init__(
        self,
        store: SessionStore,
        *,
        draw: Callable[[], None] = lambda: None,
        text_input: TextInput = _cancel,
    ) -> None:
        self.store = store
        self.text_input = text_input
        self.scheduler = RedrawScheduler(draw)
        self.editor = DragEditor(store, request_redraw=self.scheduler.request_redraw)
        self.scheduler.on_tick.append(self.tick)
        store.subscribe(self._on_change)

    def _on_change(self, kind: ChangeKind) -> None:
        self.scheduler.request_redraw()

    def tick(self) -> None:
        self.store.housekeep()

    def key_down(self, key: str) -> bool:
        """Handle a key press. Returns True if the key was bound."""
        key = key.lower()
        if key in (" ", "space"):
            self.store.toggle()
        elif key == "arrowup":
            self.store.adjust_goal(1)
        elif key == "arrowdown":
            self.store.adjust_goal(-1)
        elif key == "t":
            self.tag_at_hover()
        else:
            return False
        return True

    def tag_at_hover(self) -> bool:
        """Prompt for a tag for whatever is under the pointer."""
        seg = self.editor.hovered_segment()
        if seg is not None:
            current = self.store.sessions[seg.session_index].tag or ""
            return self.store.tag_session(seg.session_index, self.text_input(WORK_PROMPT, current))

        t = self.editor.hovered_time()
        existing, gap = self.store.break_log_at(t)
        if gap is None:
            logger.debug("Nothing to tag at %d", t)
            return False
        current = existing.tag if existing is not None else ""
        return self.store.tag_gap(t, self.text_input(BREAK_PROMPT, current))
