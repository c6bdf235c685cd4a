from __future__ import annotations

from fastapi import APIRouter, Query, Request

from lockvault.api.routes_public_parts.common import Json, _node

router = APIRouter()


@router.get("/events")
def v1_events(request: Request, after: int = Query(default=0, ge=0), limit: int = Query(default=100, ge=1, le=1000)) -> Json:
    items = _node(request).events_after(after, limit=limit)
    nxt = items[-1]["seq"] if items else after
    return {"ok": True, "events": items, "next": nxt}
