from __future__ import annotations

import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return int(default)
    try:
        return int(raw.strip())
    except Exception:
        return int(default)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Fail-fast request size limiter.

    Configure:
      LOCKVAULT_MAX_REQUEST_BYTES (default: 64_000)
      LOCKVAULT_SIZE_LIMIT_DISABLE=1 to disable (only when enforced at the edge)
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        self._enabled = not _truthy(os.environ.get("LOCKVAULT_SIZE_LIMIT_DISABLE"))
        self._max_bytes = int(max_bytes) if max_bytes is not None else _env_int("LOCKVAULT_MAX_REQUEST_BYTES", 64_000)
        self._exempt_prefixes = exempt_prefixes

    def _too_large(self) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={"ok": False, "error": {"code": "call_too_large", "message": "Request body too large"}},
        )

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        path = request.url.path or ""
        if any(path.startswith(p) for p in self._exempt_prefixes):
            return await call_next(request)

        cl = request.headers.get("content-length")
        if cl and cl.strip().isdigit() and int(cl) > self._max_bytes:
            return self._too_large()

        # Chunked bodies carry no Content-Length; cap the buffered body too.
        if (request.method or "").upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if len(body) > self._max_bytes:
                return self._too_large()

        return await call_next(request)
