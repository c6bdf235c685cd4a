from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Deque, Dict, List, Union

from lockvault.runtime.vault_logging import log_event

Json = Dict[str, Any]

_log = logging.getLogger("lockvault.events")

# Recent notifications kept in memory; the durable feed lives in the store.
DEFAULT_MAX_EVENTS = 1024


@dataclass(frozen=True)
class Deposited:
    id: int
    owner: str
    amount: int
    duration: int


@dataclass(frozen=True)
class Withdrawn:
    id: int
    owner: str
    principal: int
    reward: int


@dataclass(frozen=True)
class Ragequit:
    id: int
    owner: str
    penalty: int
    payout: int


@dataclass(frozen=True)
class Harvested:
    id: int
    owner: str
    reward: int


@dataclass(frozen=True)
class PenaltyDistributed:
    amount_to_stakers: int
    new_index: int


VaultEvent = Union[Deposited, Withdrawn, Ragequit, Harvested, PenaltyDistributed]
Listener = Callable[[VaultEvent], None]


def event_name(ev: VaultEvent) -> str:
    return type(ev).__name__


def event_to_json(ev: VaultEvent) -> Json:
    return {"event": event_name(ev), "fields": asdict(ev)}


class EventLog:
    """
    Notification sink for committed vault operations.

    Events are published only after the operation has committed and its
    reentrancy guard is released. Listener failures are logged; they never
    undo an operation that already happened.

    Only the most recent `max_events` notifications are retained.
    """

    def __init__(self, *, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        if int(max_events) <= 0:
            raise ValueError("max_events must be positive")
        self._events: Deque[VaultEvent] = deque(maxlen=int(max_events))
        self._listeners: List[Listener] = []

    @property
    def events(self) -> List[VaultEvent]:
        return list(self._events)

    def subscribe(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def publish(self, batch: List[VaultEvent]) -> None:
        for ev in batch:
            self._events.append(ev)
            log_event(_log, "vault_event", name=event_name(ev), **asdict(ev))
            for fn in list(self._listeners):
                try:
                    fn(ev)
                except Exception:
                    _log.exception("event listener failed for %s", event_name(ev))
