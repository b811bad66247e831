# src/caprewards/runtime/clock.py
from __future__ import annotations

"""Time sources.

The engine never reads wall-clock time directly. Boundary transitions
(checkpoint start, epoch end) are evaluated lazily against `clock.now()` at the
start of every call, so tests can jump across epochs and gaps deterministically.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    @abstractmethod
    def now(self) -> int:
        """Current time in unix seconds."""


class SystemClock(Clock):
    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """Settable clock for simulations and tests. Time never moves backwards."""

    def __init__(self, start: int = 0) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, t: int) -> None:
        t = int(t)
        if t < self._now:
            raise ValueError(f"clock cannot move backwards: {t} < {self._now}")
        self._now = t

    def advance(self, seconds: int) -> int:
        self.set(self._now + int(seconds))
        return self._now
