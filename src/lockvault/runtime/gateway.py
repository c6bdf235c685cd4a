from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Set, runtime_checkable

from lockvault.runtime.vault_logging import log_event

Json = Dict[str, Any]

# Account in the bank that holds everything staked in the vault.
VAULT_ACCOUNT_ID: str = "VAULT"

RecipientHook = Callable[[int], None]

_log = logging.getLogger("lockvault.gateway")


@runtime_checkable
class TransferGateway(Protocol):
    """Value-transfer capability consumed by the vault.

    transfer(): push `amount` out of vault custody to `to`. Returns False when
    the payment did not go through. Recipient code may run during the call.

    collect(): pull `amount` from `frm` into vault custody (the value that
    accompanies a deposit).
    """

    def transfer(self, to: str, amount: int) -> bool: ...

    def collect(self, frm: str, amount: int) -> bool: ...


@runtime_checkable
class JournaledGateway(Protocol):
    """Gateways that can undo their own effects when an operation fails."""

    def checkpoint(self) -> Any: ...

    def rollback(self, token: Any) -> None: ...


class InMemoryBank:
    """
    Account-balance gateway for dev nodes and tests.

    - balances are plain ints keyed by account id
    - hooks[account] runs after that account is credited by transfer();
      if the hook raises, the credit is reverted and transfer() returns False
    - rejecting accounts always refuse incoming transfers
    """

    def __init__(self, *, custody: str = VAULT_ACCOUNT_ID, balances: Optional[Dict[str, int]] = None) -> None:
        self.custody = str(custody)
        self._balances: Dict[str, int] = {}
        for k, v in (balances or {}).items():
            self._balances[str(k)] = int(v)
        self._balances.setdefault(self.custody, 0)
        self._hooks: Dict[str, RecipientHook] = {}
        self._rejecting: Set[str] = set()

    # ----------------------------
    # Test / dev controls
    # ----------------------------

    def mint(self, account: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            raise ValueError("mint amount must be positive")
        a = str(account)
        self._balances[a] = self._balances.get(a, 0) + amt

    def set_hook(self, account: str, hook: Optional[RecipientHook]) -> None:
        if hook is None:
            self._hooks.pop(str(account), None)
        else:
            self._hooks[str(account)] = hook

    def reject_incoming(self, account: str, enabled: bool = True) -> None:
        if enabled:
            self._rejecting.add(str(account))
        else:
            self._rejecting.discard(str(account))

    def balance_of(self, account: str) -> int:
        return int(self._balances.get(str(account), 0))

    # ----------------------------
    # TransferGateway
    # ----------------------------

    def transfer(self, to: str, amount: int) -> bool:
        dst = str(to or "").strip()
        amt = int(amount)
        if not dst or amt <= 0:
            return False
        if dst in self._rejecting:
            log_event(_log, "transfer_rejected", to=dst, amount=amt)
            return False

        src_bal = self._balances.get(self.custody, 0)
        if src_bal < amt:
            log_event(_log, "transfer_insufficient_custody", to=dst, amount=amt, custody=src_bal)
            return False

        before = dict(self._balances)
        self._balances[self.custody] = src_bal - amt
        self._balances[dst] = self._balances.get(dst, 0) + amt

        hook = self._hooks.get(dst)
        if hook is None:
            return True

        try:
            hook(amt)
        except Exception as e:
            # The recipient reverted: the payment did not happen.
            self._balances.clear()
            self._balances.update(before)
            log_event(_log, "transfer_recipient_reverted", to=dst, amount=amt, error=str(e))
            return False
        return True

    def collect(self, frm: str, amount: int) -> bool:
        src = str(frm or "").strip()
        amt = int(amount)
        if not src or amt <= 0:
            return False
        bal = self._balances.get(src, 0)
        if bal < amt:
            return False
        self._balances[src] = bal - amt
        self._balances[self.custody] = self._balances.get(self.custody, 0) + amt
        return True

    # ----------------------------
    # JournaledGateway
    # ----------------------------

    def checkpoint(self) -> Dict[str, int]:
        return copy.deepcopy(self._balances)

    def rollback(self, token: Any) -> None:
        self._balances.clear()
        self._balances.update({str(k): int(v) for k, v in dict(token).items()})

    # ----------------------------
    # Persistence
    # ----------------------------

    def to_json(self) -> Json:
        return {"custody": self.custody, "balances": {k: int(v) for k, v in sorted(self._balances.items())}}

    @classmethod
    def from_json(cls, j: Any) -> "InMemoryBank":
        d = j if isinstance(j, dict) else {}
        raw = d.get("balances")
        return cls(
            custody=str(d.get("custody") or VAULT_ACCOUNT_ID),
            balances={str(k): int(v) for k, v in raw.items()} if isinstance(raw, dict) else {},
        )
