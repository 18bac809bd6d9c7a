"""Coalesce rapid repeated button presses into a single action."""
from __future__ import annotations

import time
from typing import Any, Callable, Optional


class Debouncer:
    """Keep only the last action submitted within ``window`` seconds.

    Each submission replaces the pending action and restarts the window.
    ``flush`` runs the pending action exactly once when the window has
    elapsed; ``drain`` waits out the remainder of the window first.
    """

    def __init__(
        self,
        window: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._pending: Optional[Callable[[], Any]] = None
        self._submitted_at = 0.0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def submit(self, action: Callable[[], Any]) -> None:
        self._pending = action
        self._submitted_at = self._clock()

    def remaining(self) -> float:
        if self._pending is None:
            return 0.0
        return max(0.0, self.window - (self._clock() - self._submitted_at))

    def flush(self, force: bool = False) -> Any:
        if self._pending is None or (not force and self.remaining() > 0):
            return None
        action, self._pending = self._pending, None
        return action()

    def drain(self) -> Any:
        wait = self.remaining()
        if wait > 0:
            self._sleep(wait)
        return self.flush(force=True)

    def cancel(self) -> None:
        self._pending = None
