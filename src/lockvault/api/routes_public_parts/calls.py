from __future__ import annotations

from fastapi import APIRouter, Request

from lockvault.api.errors import ApiError
from lockvault.api.routes_public_parts.common import Json, _node
from lockvault.api.schemas import CallRequest, MintRequest

router = APIRouter()


@router.post("/calls")
def v1_calls_submit(body: CallRequest, request: Request) -> Json:
    """Apply one signed call against the vault.

    Returns { ok, result } where result is the dispatcher's receipt, e.g.
    {"applied": "DEPOSIT", "id": 7}. Vault failures map to 4xx with
    error.code set to the failure reason.
    """
    # Picked up by RequestLogMiddleware for the http_request line.
    request.state.call_op = body.op
    request.state.call_caller = body.caller
    result = _node(request).submit(body.model_dump())
    return {"ok": True, "result": result}


@router.post("/dev/mint")
def v1_dev_mint(body: MintRequest, request: Request) -> Json:
    node = _node(request)
    if node.cfg.mode == "prod":
        raise ApiError.not_found("not_found", "not available in prod mode", {})
    balance = node.mint(body.account, body.amount)
    return {"ok": True, "account": body.account, "balance": balance}
