from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Read-only source of the current time in integer unix seconds."""

    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Externally advanced clock. Never moves backwards."""

    def __init__(self, start: int = 0) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, ts: int) -> None:
        t = int(ts)
        if t < self._now:
            raise ValueError(f"clock cannot move backwards: {t} < {self._now}")
        self._now = t

    def advance(self, seconds: int) -> int:
        s = int(seconds)
        if s < 0:
            raise ValueError("cannot advance by a negative amount")
        self._now += s
        return self._now
