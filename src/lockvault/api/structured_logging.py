from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from lockvault.runtime.vault_logging import log_event, log_failure


def configure_structured_logging() -> None:
    """Route every logger to stdout as bare JSONL.

    log_event() already renders the JSON object, so the formatter adds
    nothing. Level comes from LOCKVAULT_LOG_LEVEL (default INFO); calling this
    again only updates the level.
    """
    level_name = (os.environ.get("LOCKVAULT_LOG_LEVEL") or "INFO").strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_lockvault_configured", False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, "_lockvault_configured", True)


def _call_context(request: Request) -> Dict[str, Any]:
    # Set by the /v1/calls route once the body has been validated.
    op = getattr(request.state, "call_op", None)
    if op is None:
        return {}
    return {"op": str(op or "").upper(), "caller": str(getattr(request.state, "call_caller", "") or "")}


class RequestLogMiddleware(BaseHTTPMiddleware):
    """
    One `http_request` line per request; vault calls also carry op + caller.

    Responses >= 400 (vault rejections included) are logged at WARNING so a
    failed RAGEQUIT or a bad signature stands out from read traffic.
    LOCKVAULT_LOG_REQUESTS=0 disables it.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("LOCKVAULT_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("lockvault.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        fields: Dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": str(request.url.path or ""),
        }
        try:
            response = await call_next(request)
        except Exception as e:
            fields.update(_call_context(request))
            log_failure(self._logger, "http_request", status=500, error=str(e), **fields)
            raise

        response.headers.setdefault("x-request-id", request_id)
        fields.update(_call_context(request))
        fields["status"] = int(response.status_code)
        fields["duration_ms"] = int((time.monotonic() - started) * 1000)
        if response.status_code >= 400:
            log_failure(self._logger, "http_request", **fields)
        else:
            log_event(self._logger, "http_request", **fields)
        return response
