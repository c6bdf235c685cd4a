# src/lockvault/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from lockvault.api.routes_public_parts.calls import router as calls_router
from lockvault.api.routes_public_parts.events import router as events_router
from lockvault.api.routes_public_parts.health import router as health_router
from lockvault.api.routes_public_parts.metrics import router as metrics_router
from lockvault.api.routes_public_parts.vault import router as vault_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(vault_router, prefix="/v1", tags=["vault"])
public_router.include_router(calls_router, prefix="/v1", tags=["calls"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
