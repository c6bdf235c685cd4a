# src/lockvault/ledger/accumulator.py
"""Global pro-rata reward accumulator.

Every penalty socialized to the remaining stakers raises a single scaled
per-share index instead of touching each position:

    index += amount * PRECISION // remaining_shares

A position's unclaimed reward is the difference between what its shares have
accrued at the current index and what was already priced in (reward_debt).

Floor division leaves dust (strictly less than one unit per share-weighted
claim) inside the vault. That slack is retained on purpose and is never swept.
"""

from __future__ import annotations

from typing import Any

from lockvault.ledger.constants import PRECISION
from lockvault.ledger.types import DistributionResult, Json, Position


class RewardAccumulator:
    def __init__(self, *, total_shares: int = 0, acc_penalty_per_share: int = 0) -> None:
        if int(total_shares) < 0 or int(acc_penalty_per_share) < 0:
            raise ValueError("accumulator fields must be non-negative")
        self._total_shares = int(total_shares)
        self._index = int(acc_penalty_per_share)

    @property
    def total_shares(self) -> int:
        return self._total_shares

    @property
    def acc_penalty_per_share(self) -> int:
        return self._index

    def accrued(self, shares: int) -> int:
        return int(shares) * self._index // PRECISION

    def pending_reward(self, position: Position) -> int:
        # Truncation in earlier updates can leave accrued at or just below the
        # debt; the floor is zero, never an underflow.
        return max(0, self.accrued(position.shares) - int(position.reward_debt))

    def settle(self, position: Position) -> int:
        return self.accrued(position.shares)

    def add_shares(self, shares: int) -> None:
        n = int(shares)
        if n <= 0:
            raise ValueError("shares to add must be positive")
        self._total_shares += n

    def remove_shares(self, shares: int) -> None:
        n = int(shares)
        if n <= 0 or n > self._total_shares:
            raise ValueError(f"cannot remove {n} shares from total {self._total_shares}")
        self._total_shares -= n

    def distribute(self, amount: int, *, excluded_shares: int = 0) -> DistributionResult:
        amt = int(amount)
        if amt < 0:
            raise ValueError("distribution amount must be non-negative")

        remaining = self._total_shares - int(excluded_shares)
        if remaining < 0:
            raise ValueError("excluded shares exceed total shares")

        if remaining == 0:
            # No live position can absorb it.
            return DistributionResult(indexed=0, to_treasury=amt, remaining_shares=0, new_index=self._index)

        if amt > 0:
            self._index += amt * PRECISION // remaining

        return DistributionResult(indexed=amt, to_treasury=0, remaining_shares=remaining, new_index=self._index)

    def to_json(self) -> Json:
        return {"total_shares": int(self._total_shares), "acc_penalty_per_share": int(self._index)}

    @classmethod
    def from_json(cls, j: Any) -> "RewardAccumulator":
        d = j if isinstance(j, dict) else {}
        return cls(
            total_shares=int(d.get("total_shares") or 0),
            acc_penalty_per_share=int(d.get("acc_penalty_per_share") or 0),
        )
