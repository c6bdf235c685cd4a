from __future__ import annotations

import threading
from pathlib import Path

import pytest

from lockvault.runtime.clock import ManualClock
from lockvault.runtime.errors import VaultError
from lockvault.runtime.node import VaultNode
from lockvault.runtime.node_boot import build_node
from lockvault.runtime.node_config import NodeConfig, VaultParams
from lockvault.testing.fixtures import DAY, ONE, T0
from lockvault.testing.sigtools import deterministic_keypair, signed_call

ALICE, _ = deterministic_keypair(label="alice")
BOB, _ = deterministic_keypair(label="bob")


def _cfg(tmp_path: Path, **overrides) -> NodeConfig:
    base = dict(
        mode="dev",
        db_path=str(tmp_path / "vault.db"),
        api_host="127.0.0.1",
        api_port=8080,
        allow_unsigned_calls=False,
        log_level="INFO",
        vault=VaultParams(max_penalty_bps=500, treasury_fee_bps=100, treasury="TREASURY"),
        genesis_balances={ALICE: 1000 * ONE, BOB: 1000 * ONE},
    )
    base.update(overrides)
    return NodeConfig(**base)


def _err(node: VaultNode, call) -> VaultError:
    with pytest.raises(VaultError) as e:
        node.submit(call)
    return e.value


def test_signed_deposit_and_nonce_replay(tmp_path: Path) -> None:
    node = build_node(_cfg(tmp_path), clock=ManualClock(T0))
    call = signed_call(label="alice", op="DEPOSIT", nonce=1, value=ONE, payload={"duration": DAY})

    assert node.submit(call) == {"applied": "DEPOSIT", "id": 1}
    assert node.nonce_of(ALICE) == 1
    assert node.vault.positions(1)[0] == ALICE

    e = _err(node, call)
    assert (e.code, e.reason) == ("forbidden", "stale_nonce")
    assert node.vault.next_id == 2


def test_tampered_call_fails_signature(tmp_path: Path) -> None:
    node = build_node(_cfg(tmp_path), clock=ManualClock(T0))
    call = signed_call(label="alice", op="DEPOSIT", nonce=1, value=ONE, payload={"duration": DAY})
    call["value"] = 2 * ONE

    e = _err(node, call)
    assert e.reason == "bad_signature"
    assert node.nonce_of(ALICE) == 0


def test_signing_for_someone_else_fails(tmp_path: Path) -> None:
    node = build_node(_cfg(tmp_path), clock=ManualClock(T0))
    call = signed_call(label="bob", op="DEPOSIT", nonce=1, value=ONE, payload={"duration": DAY})
    call["caller"] = ALICE

    assert _err(node, call).reason == "bad_signature"


def test_unsigned_calls_need_opt_in(tmp_path: Path) -> None:
    strict = VaultNode(cfg=_cfg(tmp_path), clock=ManualClock(T0))
    e = _err(strict, {"op": "DEPOSIT", "caller": ALICE, "value": 1, "payload": {"duration": 1}})
    assert (e.code, e.reason) == ("forbidden", "signature_required")

    loose = VaultNode(cfg=_cfg(tmp_path, allow_unsigned_calls=True), clock=ManualClock(T0))
    assert loose.submit({"op": "DEPOSIT", "caller": ALICE, "value": 1, "payload": {"duration": 1}})["id"] == 1


def test_nonce_is_consumed_when_the_operation_fails(tmp_path: Path) -> None:
    node = build_node(_cfg(tmp_path), clock=ManualClock(T0))
    bad = signed_call(label="alice", op="WITHDRAW", nonce=1, payload={"id": 7})

    assert _err(node, bad).reason == "position_does_not_exist"
    assert node.nonce_of(ALICE) == 1
    assert _err(node, bad).reason == "stale_nonce"

    ok = signed_call(label="alice", op="DEPOSIT", nonce=2, value=ONE, payload={"duration": DAY})
    assert node.submit(ok)["applied"] == "DEPOSIT"


def test_malformed_call_is_bad_value(tmp_path: Path) -> None:
    node = VaultNode(cfg=_cfg(tmp_path, allow_unsigned_calls=True), clock=ManualClock(T0))
    e = _err(node, {"op": "DEPOSIT", "caller": ALICE, "value": "lots"})
    assert (e.code, e.reason) == ("invalid_input", "bad_value")


def test_restart_restores_vault_bank_nonces_and_events(tmp_path: Path) -> None:
    clock = ManualClock(T0)
    cfg = _cfg(tmp_path)
    node = build_node(cfg, clock=clock)
    node.submit(signed_call(label="alice", op="DEPOSIT", nonce=1, value=ONE, payload={"duration": 14 * DAY}))
    node.submit(signed_call(label="bob", op="DEPOSIT", nonce=1, value=ONE, payload={"duration": 14 * DAY}))
    clock.advance(7 * DAY)
    node.submit(signed_call(label="bob", op="RAGEQUIT", nonce=2, payload={"id": 2}))

    again = build_node(cfg, clock=clock)

    assert again.snapshot() == node.snapshot()
    assert again.nonce_of(BOB) == 2
    assert again.bank.balance_of("TREASURY") == 25 * 10**13
    assert again.vault.pending_reward(1) == 2475 * 10**13
    assert [e["event"] for e in again.events_after(0)] == ["Deposited", "Deposited", "PenaltyDistributed", "Ragequit"]

    clock.advance(7 * DAY)
    r = again.submit(signed_call(label="alice", op="WITHDRAW", nonce=2, payload={"id": 1}))
    assert r["amount"] == ONE + 2475 * 10**13


def test_restart_with_different_params_is_refused(tmp_path: Path) -> None:
    clock = ManualClock(T0)
    build_node(_cfg(tmp_path), clock=clock)

    changed = _cfg(tmp_path, vault=VaultParams(max_penalty_bps=900, treasury_fee_bps=100, treasury="TREASURY"))
    with pytest.raises(VaultError) as e:
        build_node(changed, clock=clock)
    assert e.value.reason == "invalid_config"


def test_mint_is_dev_only(tmp_path: Path) -> None:
    node = build_node(_cfg(tmp_path), clock=ManualClock(T0))
    assert node.mint("carol", 5) == 5
    assert build_node(_cfg(tmp_path), clock=ManualClock(T0)).bank.balance_of("carol") == 5

    prod = VaultNode(cfg=_cfg(tmp_path, mode="prod", genesis_balances={}), clock=ManualClock(T0))
    with pytest.raises(VaultError) as e:
        prod.mint("carol", 5)
    assert (e.value.code, e.value.reason) == ("forbidden", "mint_disabled")


def test_in_memory_node_keeps_an_event_feed(tmp_path: Path) -> None:
    node = VaultNode(cfg=_cfg(tmp_path, allow_unsigned_calls=True), clock=ManualClock(T0))
    node.bank.mint("x", 10)
    node.submit({"op": "DEPOSIT", "caller": "x", "value": 10, "payload": {"duration": 1}})

    feed = node.events_after(0)
    assert [(e["seq"], e["event"]) for e in feed] == [(1, "Deposited")]
    assert feed[0]["fields"] == {"id": 1, "owner": "x", "amount": 10, "duration": 1}
    assert node.events_after(1) == []


def test_in_memory_feed_is_bounded_and_keeps_counting(tmp_path: Path) -> None:
    node = VaultNode(cfg=_cfg(tmp_path, allow_unsigned_calls=True), clock=ManualClock(T0), feed_limit=2)
    for _ in range(4):
        node.submit({"op": "DEPOSIT", "caller": ALICE, "value": 1, "payload": {"duration": 1}})

    assert [e["seq"] for e in node.events_after(0)] == [3, 4]
    assert [e["fields"]["id"] for e in node.events_after(3)] == [4]


def test_reads_wait_for_an_operation_in_flight(tmp_path: Path) -> None:
    clock = ManualClock(T0)
    node = VaultNode(cfg=_cfg(tmp_path, allow_unsigned_calls=True), clock=clock)
    node.submit({"op": "DEPOSIT", "caller": ALICE, "value": ONE, "payload": {"duration": DAY}})
    clock.advance(DAY)

    paying = threading.Event()
    release = threading.Event()

    def stall_then_refuse(_amount: int) -> None:
        paying.set()
        release.wait(5)
        raise RuntimeError("recipient refused")

    node.bank.set_hook(ALICE, stall_then_refuse)

    failures = []

    def withdraw() -> None:
        try:
            node.submit({"op": "WITHDRAW", "caller": ALICE, "payload": {"id": 1}})
        except VaultError as e:
            failures.append(e.reason)

    writer = threading.Thread(target=withdraw)
    writer.start()
    assert paying.wait(5)

    seen = []
    reader = threading.Thread(target=lambda: seen.append(node.read(lambda n: (n.vault.total_shares, n.vault.positions(1)[0]))))
    reader.start()
    reader.join(0.2)
    # mid-operation state (position already removed) must not leak out
    assert reader.is_alive()

    release.set()
    writer.join(5)
    reader.join(5)

    assert failures == ["transfer_to_owner_failed"]
    assert seen == [(ONE, ALICE)]
