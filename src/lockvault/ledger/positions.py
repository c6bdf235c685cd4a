# src/lockvault/ledger/positions.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from lockvault.ledger.constants import FIRST_POSITION_ID
from lockvault.ledger.types import Json, Position


class PositionLedger:
    """Arena of live positions keyed by a strictly increasing identifier.

    Absence is not an error at this layer: read() returns None and the
    orchestrator decides what a missing id means.
    """

    def __init__(self) -> None:
        self._positions: Dict[int, Position] = {}
        self._by_owner: Dict[str, List[int]] = {}
        self._next_id: int = FIRST_POSITION_ID

    @property
    def next_id(self) -> int:
        return self._next_id

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, position_id: object) -> bool:
        return position_id in self._positions

    def create(self, *, owner: str, shares: int, start: int, unlock_at: int, reward_debt: int) -> int:
        owner_s = str(owner or "").strip()
        if not owner_s:
            raise ValueError("position owner must be non-empty")
        if int(unlock_at) <= int(start):
            raise ValueError("unlock_at must be strictly after start")

        pid = self._next_id
        self._next_id += 1

        self._positions[pid] = Position(
            owner=owner_s,
            shares=int(shares),
            start=int(start),
            unlock_at=int(unlock_at),
            reward_debt=int(reward_debt),
        )
        self._by_owner.setdefault(owner_s, []).append(pid)
        return pid

    def read(self, position_id: int) -> Optional[Position]:
        return self._positions.get(int(position_id))

    def replace(self, position_id: int, position: Position) -> None:
        pid = int(position_id)
        cur = self._positions.get(pid)
        if cur is None:
            raise KeyError(pid)
        if cur.owner != position.owner or cur.shares != position.shares:
            # Only the settlement baseline may change in place.
            raise ValueError("replace may only update reward_debt")
        self._positions[pid] = position

    def remove(self, position_id: int) -> Optional[Position]:
        pid = int(position_id)
        pos = self._positions.pop(pid, None)
        if pos is None:
            return None
        ids = self._by_owner.get(pos.owner)
        if ids is not None:
            ids.remove(pid)
            if not ids:
                del self._by_owner[pos.owner]
        return pos

    def items(self) -> List[Tuple[int, Position]]:
        """Live (id, position) pairs in id order."""
        return sorted(self._positions.items())

    def ids_of(self, owner: str) -> List[int]:
        return list(self._by_owner.get(str(owner or "").strip(), []))

    def total_shares(self) -> int:
        """Sum of shares over live positions (O(n); audits and tests only)."""
        return sum(int(p.shares) for p in self._positions.values())

    def to_json(self) -> Json:
        return {
            "next_id": int(self._next_id),
            "positions": {str(pid): pos.to_json() for pid, pos in sorted(self._positions.items())},
        }

    @classmethod
    def from_json(cls, j: Any) -> "PositionLedger":
        d = j if isinstance(j, dict) else {}
        ledger = cls()
        raw = d.get("positions")
        if isinstance(raw, dict):
            for k, v in sorted(raw.items(), key=lambda kv: int(kv[0])):
                pos = Position.from_json(v)
                if not pos.active:
                    continue
                pid = int(k)
                ledger._positions[pid] = pos
                ledger._by_owner.setdefault(pos.owner, []).append(pid)
        highest = max(ledger._positions.keys(), default=FIRST_POSITION_ID - 1)
        ledger._next_id = max(int(d.get("next_id") or FIRST_POSITION_ID), highest + 1)
        return ledger
