# src/lockvault/ledger/types.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


@dataclass(frozen=True, slots=True)
class Position:
    """A single locked stake.

    `shares` doubles as principal. `reward_debt` is the part of
    shares * index / PRECISION already attributed to this position at its
    last settlement.
    """

    owner: str
    shares: int
    start: int
    unlock_at: int
    reward_debt: int

    @staticmethod
    def empty() -> "Position":
        return Position(owner="", shares=0, start=0, unlock_at=0, reward_debt=0)

    @property
    def active(self) -> bool:
        return bool(self.owner)

    @property
    def duration(self) -> int:
        return int(self.unlock_at) - int(self.start)

    def matured(self, now: int) -> bool:
        return int(now) >= int(self.unlock_at)

    def with_reward_debt(self, reward_debt: int) -> "Position":
        return Position(
            owner=self.owner,
            shares=self.shares,
            start=self.start,
            unlock_at=self.unlock_at,
            reward_debt=int(reward_debt),
        )

    def as_tuple(self) -> Tuple[str, int, int, int, int]:
        return (self.owner, int(self.shares), int(self.start), int(self.unlock_at), int(self.reward_debt))

    def to_json(self) -> Json:
        return {
            "owner": self.owner,
            "shares": int(self.shares),
            "start": int(self.start),
            "unlock_at": int(self.unlock_at),
            "reward_debt": int(self.reward_debt),
        }

    @staticmethod
    def from_json(j: Any) -> "Position":
        d = j if isinstance(j, dict) else {}
        return Position(
            owner=str(d.get("owner") or ""),
            shares=_as_int(d.get("shares")),
            start=_as_int(d.get("start")),
            unlock_at=_as_int(d.get("unlock_at")),
            reward_debt=_as_int(d.get("reward_debt")),
        )


@dataclass(frozen=True, slots=True)
class PenaltyQuote:
    penalty_bps: int
    penalty: int
    treasury_fee: int
    to_stakers: int

    @staticmethod
    def zero() -> "PenaltyQuote":
        return PenaltyQuote(penalty_bps=0, penalty=0, treasury_fee=0, to_stakers=0)

    def to_json(self) -> Json:
        return {
            "penalty_bps": int(self.penalty_bps),
            "penalty": int(self.penalty),
            "treasury_fee": int(self.treasury_fee),
            "to_stakers": int(self.to_stakers),
        }


@dataclass(frozen=True, slots=True)
class DistributionResult:
    """Outcome of socializing an amount over the remaining shares.

    Exactly one of `indexed` / `to_treasury` is non-zero for a positive amount.
    """

    indexed: int
    to_treasury: int
    remaining_shares: int
    new_index: int
