from __future__ import annotations

from fastapi import APIRouter, Request

from lockvault.api.routes_public_parts.common import Json, _node, _position_id
from lockvault.runtime.node import VaultNode

router = APIRouter()


def _vault_view(node: VaultNode) -> Json:
    v = node.vault
    return {
        "ok": True,
        "max_penalty_bps": v.max_penalty_bps,
        "treasury_fee_bps": v.treasury_fee_bps,
        "treasury": v.treasury,
        "total_shares": v.total_shares,
        "acc_penalty_per_share": v.acc_penalty_per_share,
        "next_id": v.next_id,
        "now": v.clock.now(),
    }


@router.get("/vault")
def v1_vault(request: Request) -> Json:
    return _node(request).read(_vault_view)


@router.get("/positions/{position_id}")
def v1_position(position_id: str, request: Request) -> Json:
    """Full position tuple. Absent ids return the all-zero tuple, like an unset mapping slot."""
    pid = _position_id(position_id)
    owner, shares, start, unlock_at, reward_debt = _node(request).read(lambda n: n.vault.positions(pid))
    return {
        "ok": True,
        "id": pid,
        "active": bool(owner),
        "owner": owner,
        "shares": shares,
        "start": start,
        "unlock_at": unlock_at,
        "reward_debt": reward_debt,
    }


@router.get("/positions/{position_id}/pending")
def v1_position_pending(position_id: str, request: Request) -> Json:
    pid = _position_id(position_id)
    return {"ok": True, "id": pid, "pending_reward": _node(request).read(lambda n: n.vault.pending_reward(pid))}


@router.get("/positions/{position_id}/quote")
def v1_position_quote(position_id: str, request: Request) -> Json:
    """What a ragequit would cost and pay right now.

    `payout` is principal minus penalty plus pending reward, and 0 once the
    position is absent or matured (ragequit is no longer possible).
    """
    pid = _position_id(position_id)

    def view(node: VaultNode) -> Json:
        v = node.vault
        pos = v.position(pid)
        now = v.clock.now()
        quote = v.quote_ragequit(pid)
        pending = v.pending_reward(pid)
        can_quit = pos is not None and not pos.matured(now)
        payout = pos.shares - quote.penalty + pending if can_quit else 0
        return {"ok": True, "id": pid, **quote.to_json(), "pending_reward": pending, "payout": payout, "now": now}

    return _node(request).read(view)


@router.get("/accounts/{owner}/positions")
def v1_account_positions(owner: str, request: Request) -> Json:
    return {"ok": True, "owner": owner, "positions": _node(request).read(lambda n: n.vault.positions_of(owner))}


@router.get("/accounts/{owner}/balance")
def v1_account_balance(owner: str, request: Request) -> Json:
    balance, nonce = _node(request).read(lambda n: (n.bank.balance_of(owner), n.nonce_of(owner)))
    return {"ok": True, "owner": owner, "balance": balance, "nonce": nonce}
