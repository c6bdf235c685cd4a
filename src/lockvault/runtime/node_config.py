# src/lockvault/runtime/node_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from lockvault.ledger.constants import MAX_BPS
from lockvault.runtime.errors import INVALID_CONFIG, INVALID_INPUT, VaultError

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class VaultParams:
    """Construction-time vault parameters. Immutable once the vault exists."""

    max_penalty_bps: int
    treasury_fee_bps: int
    treasury: str

    def to_json(self) -> Json:
        return {
            "max_penalty_bps": int(self.max_penalty_bps),
            "treasury_fee_bps": int(self.treasury_fee_bps),
            "treasury": self.treasury,
        }


def validate_vault_params(p: VaultParams) -> None:
    for name, v in (("max_penalty_bps", p.max_penalty_bps), ("treasury_fee_bps", p.treasury_fee_bps)):
        if isinstance(v, bool) or not isinstance(v, int):
            raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": name, "value": v})
        if v < 0 or v > MAX_BPS:
            raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": name, "value": v, "max": MAX_BPS})
    if not isinstance(p.treasury, str) or not p.treasury.strip():
        raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": "treasury", "value": p.treasury})


def _bps_field(d: Json, name: str, default: Optional[int]) -> int:
    if name not in d:
        if default is None:
            raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": name, "missing": True})
        return int(default)
    v = d[name]
    if isinstance(v, bool) or not isinstance(v, int):
        raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": name, "value": repr(v)})
    return v


def vault_params_from_json(raw: Any, default: Optional[VaultParams] = None) -> VaultParams:
    """Parse vault params. Present fields must be real ints; absent ones come
    from `default`, or are an error when no default is given (stored snapshots)."""
    if raw is not None and not isinstance(raw, dict):
        raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": "vault", "value": repr(raw)})
    d = raw or {}

    treasury = d.get("treasury")
    if treasury is None:
        if default is None:
            raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": "treasury", "missing": True})
        treasury = default.treasury
    if not isinstance(treasury, str):
        raise VaultError(INVALID_INPUT, INVALID_CONFIG, {"field": "treasury", "value": repr(treasury)})

    p = VaultParams(
        max_penalty_bps=_bps_field(d, "max_penalty_bps", default.max_penalty_bps if default else None),
        treasury_fee_bps=_bps_field(d, "treasury_fee_bps", default.treasury_fee_bps if default else None),
        treasury=treasury.strip(),
    )
    validate_vault_params(p)
    return p


@dataclass(frozen=True)
class NodeConfig:
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file for the vault snapshot + event log.
    db_path: str

    api_host: str
    api_port: int

    allow_unsigned_calls: bool

    log_level: str

    vault: VaultParams

    # Dev/testnet only: initial gateway balances.
    genesis_balances: Dict[str, int] = field(default_factory=dict)


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_node_config(cfg: NodeConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if mode == "prod" and cfg.allow_unsigned_calls:
        raise ValueError("allow_unsigned_calls is not permitted in prod mode")

    if mode == "prod" and cfg.genesis_balances:
        raise ValueError("genesis_balances is only supported in dev/testnet modes")

    for acct, amt in cfg.genesis_balances.items():
        if not str(acct).strip() or int(amt) < 0:
            raise ValueError(f"bad genesis balance entry: {acct!r}={amt!r}")

    validate_vault_params(cfg.vault)


def default_node_config() -> NodeConfig:
    return NodeConfig(
        # Production-safe default; dev conveniences must be opted into.
        mode="prod",
        db_path="./data/lockvault.db",
        api_host="127.0.0.1",
        api_port=8080,
        allow_unsigned_calls=False,
        log_level="INFO",
        vault=VaultParams(max_penalty_bps=500, treasury_fee_bps=100, treasury="TREASURY"),
        genesis_balances={},
    )


def _read_raw(path: Path) -> Json:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("node config must be a mapping")
    return raw


def read_node_config_file(path: str) -> NodeConfig:
    raw = _read_raw(Path(path))
    d = default_node_config()

    gb = raw.get("genesis_balances")
    cfg = NodeConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        allow_unsigned_calls=_as_bool(raw.get("allow_unsigned_calls"), d.allow_unsigned_calls),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        vault=vault_params_from_json(raw.get("vault"), d.vault),
        genesis_balances={str(k): int(v) for k, v in gb.items()} if isinstance(gb, dict) else {},
    )

    validate_node_config(cfg)
    return cfg


def load_node_config(*, config_path: Optional[str] = None) -> NodeConfig:
    p = config_path or os.environ.get("LOCKVAULT_CONFIG_PATH")
    if p:
        return read_node_config_file(p)

    cfg = default_node_config()
    validate_node_config(cfg)
    return cfg


def apply_node_config_to_env(cfg: NodeConfig) -> None:
    validate_node_config(cfg)
    os.environ["LOCKVAULT_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["LOCKVAULT_DB_PATH"] = cfg.db_path
    os.environ["LOCKVAULT_LOG_LEVEL"] = cfg.log_level
    os.environ["LOCKVAULT_ALLOW_UNSIGNED_CALLS"] = "1" if cfg.allow_unsigned_calls else "0"
