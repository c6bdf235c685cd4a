from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lockvault.runtime import errors as E
from lockvault.runtime.errors import VaultError


@dataclass(eq=False)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_vault_error(e: VaultError) -> "ApiError":
        details = e.details if isinstance(e.details, dict) else ({} if e.details is None else {"details": e.details})
        details = {"code": e.code, **details}
        if e.code == E.NOT_FOUND:
            return ApiError.not_found(e.reason, str(e), details)
        if e.code == E.FORBIDDEN:
            return ApiError.forbidden(e.reason, str(e), details)
        if e.code in {E.REENTRANCY, E.TRANSFER_FAILED}:
            return ApiError.conflict(e.reason, str(e), details)
        return ApiError.bad_request(e.reason, str(e), details)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}},
        )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return exc.to_response()

    @app.exception_handler(VaultError)
    async def _vault_error(_request: Request, exc: VaultError) -> JSONResponse:
        return ApiError.from_vault_error(exc).to_response()
