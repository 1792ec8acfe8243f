"""Coalescing redraw scheduler for a single cooperative loop."""

from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

TICK_INTERVAL = 0.5
FRAME_INTERVAL = 1 / 30


class RedrawScheduler:
    """Collapse any number of redraw requests into at most one draw per frame.

    A periodic tick also requests a redraw so live timers keep moving with no
    input. Hooks in `on_tick` run before each tick's redraw request.
    """

    def __init__(
        self,
        draw: Callable[[], None],
        *,
        tick_interval: float = TICK_INTERVAL,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.draw = draw
        self.tick_interval = tick_interval
        self.monotonic = monotonic
        self.on_tick: list[Callable[[], None]] = []
        self.pending = False
        self.draw_count = 0
        self._last_tick: float | None = None

    def request_redraw(self) -> None:
        self.pending = True

    def frame(self) -> bool:
        """Drain one pending redraw. Returns True if a draw happened."""
        if not self.pending:
            return False
        self.pending = False
        self.draw()
        self.draw_count += 1
        return True

    def tick(self) -> bool:
        """Fire the periodic tick if its interval has elapsed."""
        now = self.monotonic()
        if self._last_tick is not None and now - self._last_tick < self.tick_interval:
            return False
        self._last_tick = now
        for hook in list(self.on_tick):
            hook()
        self.request_redraw()
        return True

    def run(
        self,
        *,
        should_stop: Callable[[], bool] = lambda: False,
        sleep: Callable[[float], None] = time.sleep,
        frame_interval: float = FRAME_INTERVAL,
    ) -> None:
        """Drive ticks and frames until should_stop() returns True."""
        self.request_redraw()
        while not should_stop():
            self.tick()
            self.frame()
            sleep(frame_interval)
        logger.debug("Scheduler stopped after %d draws", self.draw_count)
