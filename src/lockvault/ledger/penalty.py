# src/lockvault/ledger/penalty.py
from __future__ import annotations

from lockvault.ledger.constants import BPS_DENOMINATOR
from lockvault.ledger.types import PenaltyQuote


def penalty_bps_at(*, max_penalty_bps: int, start: int, unlock_at: int, now: int) -> int:
    """Linear decay from max_penalty_bps at `start` to 0 at `unlock_at`."""
    total = int(unlock_at) - int(start)
    if total <= 0:
        return 0
    remaining = int(unlock_at) - int(now)
    if remaining <= 0:
        return 0
    if remaining > total:
        remaining = total
    return int(max_penalty_bps) * remaining // total


def compute_penalty(
    *,
    max_penalty_bps: int,
    treasury_fee_bps: int,
    principal: int,
    start: int,
    unlock_at: int,
    now: int,
) -> PenaltyQuote:
    """Early-exit penalty and its treasury / staker split.

    All divisions truncate toward zero (operands are non-negative, so floor
    division is the same thing here).
    """
    bps = penalty_bps_at(max_penalty_bps=max_penalty_bps, start=start, unlock_at=unlock_at, now=now)
    penalty = int(principal) * bps // BPS_DENOMINATOR
    fee = penalty * int(treasury_fee_bps) // BPS_DENOMINATOR
    return PenaltyQuote(penalty_bps=bps, penalty=penalty, treasury_fee=fee, to_stakers=penalty - fee)
