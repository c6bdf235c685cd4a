from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI

from lockvault.api.errors import install_error_handlers
from lockvault.api.routes_public import public_router
from lockvault.api.security import RequestSizeLimitMiddleware
from lockvault.api.structured_logging import RequestLogMiddleware
from lockvault.runtime.node import VaultNode
from lockvault.runtime.node_boot import build_node as _build_node
from lockvault.runtime.node_config import NodeConfig, apply_node_config_to_env, load_node_config


def build_node(cfg: Optional[NodeConfig] = None) -> VaultNode:
    """Build the VaultNode for API runtime.

    This wrapper exists so tests can monkeypatch `lockvault.api.app.build_node`
    without reaching into runtime modules.
    """
    return _build_node(cfg)


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load node config, export it to env, attach app.state.node
      - False: keep lightweight for unit tests; app.state.node is None and
        every vault route answers 500 not_ready until a node is attached

    Run with uvicorn's factory mode:
      uvicorn --factory lockvault.api.app:create_app
    """
    cfg: Optional[NodeConfig] = None
    if boot_runtime:
        cfg = load_node_config()
        apply_node_config_to_env(cfg)

    mode = (cfg.mode if cfg is not None else os.environ.get("LOCKVAULT_MODE", "prod")).strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="LockVault Node API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="LockVault Node API")

    app.state.node = build_node(cfg) if boot_runtime else None

    # --- Middleware ---
    # Request size limiter should be early to fail fast.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    install_error_handlers(app)

    # --- Routers ---
    app.include_router(public_router)

    return app
