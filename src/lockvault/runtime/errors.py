from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class VaultError(Exception):
    """Canonical error type for vault operations, dispatch and config.

    `code` is the taxonomy bucket, `reason` the precise condition.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


# codes
INVALID_INPUT = "invalid_input"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"
INVALID_STATE = "invalid_state"
REENTRANCY = "reentrancy"
TRANSFER_FAILED = "transfer_failed"
REJECTED = "rejected"

# reasons
ZERO_DEPOSIT = "zero_deposit"
ZERO_DURATION = "zero_duration"
INVALID_CONFIG = "invalid_config"
BAD_VALUE = "bad_value"
NOT_OWNER = "not_owner"
MISSING_CALLER = "missing_caller"
POSITION_DOES_NOT_EXIST = "position_does_not_exist"
STAKE_NOT_MATURED = "stake_not_matured"
ALREADY_MATURED = "already_matured"
NOTHING_TO_HARVEST = "nothing_to_harvest"
REENTRANT_CALL = "reentrant_call"
TRANSFER_TO_OWNER_FAILED = "transfer_to_owner_failed"
TRANSFER_TO_TREASURY_FAILED = "transfer_to_treasury_failed"
COLLECT_FAILED = "collect_failed"
UNKNOWN_OPERATION = "unknown_operation"
UNSOLICITED_TRANSFER = "unsolicited_transfer"
