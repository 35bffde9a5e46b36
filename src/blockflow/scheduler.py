"""
Time policies for a live canvas.

Debouncer coalesces bursts of change notifications into one layout pass
once the canvas has been quiet for a fixed delay. PreservedPositions holds
the short-lived "preserve position" flags set after an insertion.

Neither class owns a timer: the host calls them with the current time (or
lets them read the injected clock) from its own event loop.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional
import logging
import time

logger = logging.getLogger(__name__)


DEBOUNCE_DELAY = 0.5
SETTLE_WINDOW = 2.0


class Debouncer:
    """
    Coalesce-until-quiet policy.

    Every poke() pushes the deadline back to now + delay; fire() reports
    True exactly once when the deadline has passed.
    """

    def __init__(self, delay: float = DEBOUNCE_DELAY, clock: Callable[[], float] = time.monotonic):
        self.delay = delay
        self.clock = clock
        self._deadline: Optional[float] = None
        self.pokes = 0

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def poke(self, now: Optional[float] = None) -> None:
        """Record a change and restart the quiet period."""
        self._deadline = self._now(now) + self.delay
        self.pokes += 1

    def due(self, now: Optional[float] = None) -> bool:
        return self._deadline is not None and self._now(now) >= self._deadline

    def fire(self, now: Optional[float] = None) -> bool:
        """
        Consume the pending run if it is due.

        Returns:
            True if the caller should run now; the burst is then cleared
        """
        if not self.due(now):
            return False
        logger.debug("debounce fired after %d changes", self.pokes)
        self._deadline = None
        self.pokes = 0
        return True

    def cancel(self) -> None:
        self._deadline = None
        self.pokes = 0


class PreservedPositions:
    """
    Settle-window registry of blocks whose position must not be overwritten.

    A flag expires once its window has elapsed *and* at least one layout
    pass has run since it was set, so a freshly inserted block survives at
    least one full pass unchanged even if the debounce outlasts the window.
    """

    def __init__(self, window: float = SETTLE_WINDOW, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self.clock = clock
        self._deadlines: dict[str, float] = {}
        self._passed: set[str] = set()

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._deadlines

    def __len__(self) -> int:
        return len(self._deadlines)

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    def mark(self, block_id: str, now: Optional[float] = None) -> None:
        """Protect block_id for a fresh settle window."""
        self._deadlines[block_id] = self._now(now) + self.window
        self._passed.discard(block_id)

    def discard(self, block_id: str) -> None:
        self._deadlines.pop(block_id, None)
        self._passed.discard(block_id)

    def note_pass(self, ids: Optional[Iterable[str]] = None) -> None:
        """Record that a layout pass honoured the given flags (all if None)."""
        self._passed.update(self._deadlines if ids is None else ids)

    def expire(self, now: Optional[float] = None) -> list[str]:
        """
        Drop flags whose window elapsed and that survived a layout pass.

        Returns:
            Ids that are no longer preserved
        """
        t = self._now(now)
        done = [
            bid for bid, deadline in self._deadlines.items()
            if t >= deadline and bid in self._passed
        ]
        for bid in done:
            self.discard(bid)
        return done

    def active(self, now: Optional[float] = None) -> set[str]:
        """Ids currently preserved, after expiring stale flags."""
        self.expire(now)
        return set(self._deadlines)
