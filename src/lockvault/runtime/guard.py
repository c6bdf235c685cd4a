from __future__ import annotations

from types import TracebackType
from typing import Optional, Type

from lockvault.runtime.errors import REENTRANCY, REENTRANT_CALL, VaultError


class ReentrancyGuard:
    """
    Single-flight flag held for the duration of a mutating vault operation.

    A gateway transfer may run recipient code that calls straight back into the
    vault; such a nested call finds the flag set and fails. The flag is
    released on every exit path, including failures.
    """

    def __init__(self) -> None:
        self._entered = False
        self._holder = ""

    @property
    def locked(self) -> bool:
        return self._entered

    def acquire(self, op: str = "") -> None:
        if self._entered:
            raise VaultError(REENTRANCY, REENTRANT_CALL, {"op": op, "held_by": self._holder})
        self._entered = True
        self._holder = str(op)

    def release(self) -> None:
        self._entered = False
        self._holder = ""

    def hold(self, op: str) -> "_Held":
        return _Held(self, op)


class _Held:
    def __init__(self, guard: ReentrancyGuard, op: str) -> None:
        self._guard = guard
        self._op = op

    def __enter__(self) -> None:
        self._guard.acquire(self._op)

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self._guard.release()
