# src/lockvault/ledger/constants.py
"""Fixed-point and basis-point constants for the staking ledger.

- Shares are integer base units (1 unit deposited = 1 unit of weight).
- The reward index is scaled by PRECISION (1e18).
- Penalty and fee ratios are basis points out of BPS_DENOMINATOR.
"""

from __future__ import annotations

# Scale of acc_penalty_per_share
PRECISION: int = 10**18

# 100.00%
BPS_DENOMINATOR: int = 10_000
MAX_BPS: int = BPS_DENOMINATOR

# First identifier handed out by the position ledger
FIRST_POSITION_ID: int = 1

# Convenience for durations
SECONDS_PER_DAY: int = 24 * 60 * 60
