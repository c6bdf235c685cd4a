from __future__ import annotations

from typing import Dict, Optional, Tuple

from lockvault.ledger.constants import SECONDS_PER_DAY
from lockvault.runtime.clock import ManualClock
from lockvault.runtime.gateway import InMemoryBank
from lockvault.runtime.node_config import VaultParams
from lockvault.runtime.vault import CommitHook, StakingVault

# TEST ONLY.

T0 = 1_700_000_000
DAY = SECONDS_PER_DAY
ONE = 10**18
TREASURY = "TREASURY"


def make_vault(
    *,
    max_penalty_bps: int = 500,
    treasury_fee_bps: int = 100,
    balances: Optional[Dict[str, int]] = None,
    commit_hook: Optional[CommitHook] = None,
) -> Tuple[StakingVault, InMemoryBank, ManualClock]:
    """Vault over an in-memory bank and a manual clock parked at T0.

    Default balances fund alice, bob and carol with 1000 whole tokens each.
    """
    bank = InMemoryBank(balances=balances if balances is not None else {n: 1000 * ONE for n in ("alice", "bob", "carol")})
    clock = ManualClock(start=T0)
    vault = StakingVault(
        params=VaultParams(max_penalty_bps=max_penalty_bps, treasury_fee_bps=treasury_fee_bps, treasury=TREASURY),
        gateway=bank,
        clock=clock,
        commit_hook=commit_hook,
    )
    return vault, bank, clock
