from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request):
    node = getattr(request.app.state, "node", None)
    return {
        "ok": True,
        "ts_ms": int(time.time() * 1000),
        "ready": node is not None,
        "mode": node.cfg.mode if node is not None else None,
    }
