# src/lockvault/runtime/dispatch.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict

from lockvault.runtime import errors as E
from lockvault.runtime.errors import VaultError
from lockvault.runtime.vault import StakingVault

Json = Dict[str, Any]


@dataclass(frozen=True)
class CallEnvelope:
    """One caller-attributed request against the vault.

    `value` is the amount of funds attached to the call. Only DEPOSIT accepts
    attached value.
    """

    op: str
    caller: str
    value: int = 0
    payload: Dict[str, Any] | None = None
    nonce: int = 0
    sig: str = ""

    @staticmethod
    def from_json(j: Any) -> "CallEnvelope":
        if isinstance(j, CallEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return CallEnvelope(
            op=str(j.get("op", "") or ""),
            caller=str(j.get("caller", "") or ""),
            value=int(j.get("value", 0) or 0),
            payload=dict(j.get("payload", {}) or {}),
            nonce=int(j.get("nonce", 0) or 0),
            sig=str(j.get("sig", "") or ""),
        )

    def to_json(self) -> Json:
        return {
            "op": self.op,
            "caller": self.caller,
            "value": int(self.value),
            "payload": dict(self.payload or {}),
            "nonce": int(self.nonce),
            "sig": self.sig,
        }


def _op(env: CallEnvelope) -> str:
    return str(env.op or "").strip().upper()


def _payload_int(env: CallEnvelope, key: str) -> Any:
    p = env.payload or {}
    if key not in p:
        raise VaultError(E.INVALID_INPUT, E.BAD_VALUE, {"op": _op(env), "missing": key})
    return p.get(key)


def _deposit(vault: StakingVault, env: CallEnvelope) -> Json:
    pid = vault.deposit(env.caller, int(env.value), _payload_int(env, "duration"))
    return {"applied": "DEPOSIT", "id": pid}


def _withdraw(vault: StakingVault, env: CallEnvelope) -> Json:
    pid = _payload_int(env, "id")
    amount = vault.withdraw(env.caller, pid)
    return {"applied": "WITHDRAW", "id": pid, "amount": amount}


def _ragequit(vault: StakingVault, env: CallEnvelope) -> Json:
    pid = _payload_int(env, "id")
    payout = vault.ragequit(env.caller, pid)
    return {"applied": "RAGEQUIT", "id": pid, "payout": payout}


def _harvest(vault: StakingVault, env: CallEnvelope) -> Json:
    pid = _payload_int(env, "id")
    reward = vault.harvest_profit(env.caller, pid)
    return {"applied": "HARVEST_PROFIT", "id": pid, "reward": reward}


_HANDLERS: Dict[str, Callable[[StakingVault, CallEnvelope], Json]] = {
    "DEPOSIT": _deposit,
    "WITHDRAW": _withdraw,
    "RAGEQUIT": _ragequit,
    "HARVEST_PROFIT": _harvest,
}

PAYABLE_OPS = frozenset({"DEPOSIT"})
SUPPORTED_OPS = frozenset(_HANDLERS)


def apply_call(vault: StakingVault, env: Any) -> Json:
    """Route a call envelope to the vault operation it names.

    - value with no operation is an unsolicited transfer
    - value attached to a non-payable operation is an unsolicited transfer
    - any other unrecognized operation is rejected
    """
    env_norm = CallEnvelope.from_json(env)
    t = _op(env_norm)
    value = int(env_norm.value or 0)

    if value < 0:
        raise VaultError(E.INVALID_INPUT, E.BAD_VALUE, {"field": "value", "value": value})

    if not t:
        if value > 0:
            vault.receive(env_norm.caller, value)
        raise VaultError(E.REJECTED, E.UNKNOWN_OPERATION, {"op": t})

    fn = _HANDLERS.get(t)
    if fn is None:
        if value > 0:
            raise VaultError(E.REJECTED, E.UNSOLICITED_TRANSFER, {"op": t, "value": value})
        raise VaultError(E.REJECTED, E.UNKNOWN_OPERATION, {"op": t})

    if value > 0 and t not in PAYABLE_OPS:
        raise VaultError(E.REJECTED, E.UNSOLICITED_TRANSFER, {"op": t, "value": value})

    return fn(vault, env_norm)


__all__ = ["CallEnvelope", "PAYABLE_OPS", "SUPPORTED_OPS", "apply_call"]
