# src/lockvault/crypto/sig.py
from __future__ import annotations

import base64
import json
from typing import Any, Dict, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    # hex
    try:
        return bytes.fromhex(s)
    except Exception:
        pass
    # base64 / base64url
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2)
    except Exception as e:
        raise ValueError("not hex or base64") from e


def canonical_call_message(*, op: str, caller: str, nonce: int, value: int, payload: Json) -> bytes:
    obj: Json = {
        "op": str(op),
        "caller": str(caller),
        "nonce": int(nonce),
        "value": int(value),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        pk_b = _decode_bytes(pubkey)
        key = Ed25519PublicKey.from_public_bytes(pk_b)
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    """Sign a message with an Ed25519 private key.

    privkey: hex or base64/base64url string of the 32-byte seed.
    encoding: "hex" (default) or "b64".
    """
    pk_b = _decode_bytes(privkey)
    if len(pk_b) == 64:
        pk_b = pk_b[:32]
    if len(pk_b) != 32:
        raise ValueError("ed25519 privkey must be 32-byte seed (or 64-byte expanded key)")

    key = Ed25519PrivateKey.from_private_bytes(pk_b)
    sig_b = key.sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")


def generate_keypair() -> Tuple[str, str]:
    """Return (privkey_hex, pubkey_hex). The pubkey doubles as the caller id."""
    key = Ed25519PrivateKey.generate()
    priv = key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    pub = key.public_key().public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
    return priv.hex(), pub.hex()


def sign_call_dict(*, call: Json, privkey: str, encoding: str = "hex") -> Json:
    """Return a copy of call with its 'sig' field populated."""
    op = str(call.get("op") or "")
    caller = str(call.get("caller") or "")
    nonce = int(call.get("nonce") or 0)
    value = int(call.get("value") or 0)
    payload = call.get("payload") if isinstance(call.get("payload"), dict) else {}

    msg = canonical_call_message(op=op, caller=caller, nonce=nonce, value=value, payload=payload)

    out = dict(call)
    out["op"] = op
    out["caller"] = caller
    out["nonce"] = nonce
    out["value"] = value
    out["payload"] = payload
    out["sig"] = sign_ed25519(message=msg, privkey=privkey, encoding=encoding)
    return out


def verify_call_sig(*, op: str, caller: str, nonce: int, value: int, payload: Json, sig: str) -> bool:
    """The caller id is the hex/base64 encoded ed25519 public key."""
    if not sig or not caller:
        return False
    msg = canonical_call_message(op=op, caller=caller, nonce=nonce, value=value, payload=payload)
    return verify_ed25519_signature(message=msg, sig=sig, pubkey=caller)
