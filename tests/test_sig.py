from __future__ import annotations

from lockvault.crypto.sig import canonical_call_message, generate_keypair, sign_call_dict, verify_call_sig
from lockvault.testing.sigtools import deterministic_keypair


def test_signed_call_verifies_against_caller_pubkey() -> None:
    priv, pub = generate_keypair()
    call = sign_call_dict(call={"op": "HARVEST_PROFIT", "caller": pub, "nonce": 3, "payload": {"id": 1}}, privkey=priv)

    assert verify_call_sig(op="HARVEST_PROFIT", caller=pub, nonce=3, value=0, payload={"id": 1}, sig=call["sig"])
    assert not verify_call_sig(op="HARVEST_PROFIT", caller=pub, nonce=4, value=0, payload={"id": 1}, sig=call["sig"])
    assert not verify_call_sig(op="WITHDRAW", caller=pub, nonce=3, value=0, payload={"id": 1}, sig=call["sig"])


def test_base64_signatures_are_accepted() -> None:
    pub, priv = deterministic_keypair(label="alice")
    call = sign_call_dict(call={"op": "DEPOSIT", "caller": pub, "nonce": 1, "value": 5}, privkey=priv, encoding="b64")
    assert verify_call_sig(op="DEPOSIT", caller=pub, nonce=1, value=5, payload={}, sig=call["sig"])


def test_garbage_signature_is_rejected() -> None:
    pub, _ = deterministic_keypair(label="alice")
    assert not verify_call_sig(op="DEPOSIT", caller=pub, nonce=1, value=5, payload={}, sig="zz")
    assert not verify_call_sig(op="DEPOSIT", caller="", nonce=1, value=5, payload={}, sig="00")


def test_canonical_message_ignores_key_order() -> None:
    a = canonical_call_message(op="DEPOSIT", caller="c", nonce=1, value=2, payload={"x": 1, "y": 2})
    b = canonical_call_message(op="DEPOSIT", caller="c", nonce=1, value=2, payload={"y": 2, "x": 1})
    assert a == b
