"""Pydantic request schemas for the public API.

These exist for HTTP input validation only; the vault itself validates every
value again when the call is applied.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field


class CallRequest(BaseModel):
    op: str = Field(default="", description="DEPOSIT | WITHDRAW | RAGEQUIT | HARVEST_PROFIT")
    caller: str = Field(..., description="Hex ed25519 public key of the caller")
    value: int = Field(default=0, ge=0, description="Funds attached to the call (DEPOSIT only)")
    payload: Dict[str, Any] = Field(default_factory=dict, description='{"duration": s} or {"id": n}')
    nonce: int = Field(default=0, ge=0, description="Strictly increasing per caller")
    sig: str = Field(default="", description="Hex/base64 ed25519 signature over the canonical call")


class MintRequest(BaseModel):
    account: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
