from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from lockvault.api.errors import ApiError
from lockvault.runtime.node import VaultNode

Json = Dict[str, Any]


def _node(request: Request) -> VaultNode:
    node = getattr(request.app.state, "node", None)
    if node is None:
        raise ApiError.internal("not_ready", "vault node not attached to app.state", {})
    return node


def _position_id(raw: Any) -> int:
    try:
        pid = int(raw)
    except Exception:
        raise ApiError.bad_request("bad_id", "position id must be an integer", {"id": raw})
    if pid < 0:
        raise ApiError.bad_request("bad_id", "position id must be non-negative", {"id": pid})
    return pid
