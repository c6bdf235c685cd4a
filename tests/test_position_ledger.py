from __future__ import annotations

import pytest

from lockvault.ledger.positions import PositionLedger


def _create(ledger: PositionLedger, owner: str = "alice", shares: int = 100) -> int:
    return ledger.create(owner=owner, shares=shares, start=10, unlock_at=20, reward_debt=0)


def test_ids_start_at_one_and_are_never_reused() -> None:
    ledger = PositionLedger()
    a = _create(ledger)
    b = _create(ledger, owner="bob")
    assert (a, b) == (1, 2)

    removed = ledger.remove(a)
    assert removed is not None and removed.owner == "alice"
    assert ledger.read(a) is None
    assert a not in ledger

    c = _create(ledger)
    assert c == 3
    assert len(ledger) == 2


def test_owner_index_tracks_live_positions() -> None:
    ledger = PositionLedger()
    a1 = _create(ledger)
    _create(ledger, owner="bob")
    a2 = _create(ledger)

    assert ledger.ids_of("alice") == [a1, a2]
    ledger.remove(a1)
    assert ledger.ids_of("alice") == [a2]
    ledger.remove(a2)
    assert ledger.ids_of("alice") == []


def test_remove_missing_is_none() -> None:
    assert PositionLedger().remove(9) is None


def test_create_rejects_bad_positions() -> None:
    ledger = PositionLedger()
    with pytest.raises(ValueError):
        ledger.create(owner="", shares=1, start=0, unlock_at=1, reward_debt=0)
    with pytest.raises(ValueError):
        ledger.create(owner="alice", shares=1, start=5, unlock_at=5, reward_debt=0)
    assert ledger.next_id == 1


def test_replace_only_moves_reward_debt() -> None:
    ledger = PositionLedger()
    pid = _create(ledger)
    pos = ledger.read(pid)
    assert pos is not None

    ledger.replace(pid, pos.with_reward_debt(55))
    assert ledger.read(pid).reward_debt == 55  # type: ignore[union-attr]

    bigger = type(pos)(owner=pos.owner, shares=pos.shares + 1, start=pos.start, unlock_at=pos.unlock_at, reward_debt=0)
    with pytest.raises(ValueError):
        ledger.replace(pid, bigger)
    with pytest.raises(KeyError):
        ledger.replace(99, pos)


def test_snapshot_keeps_next_id_after_removals() -> None:
    ledger = PositionLedger()
    _create(ledger)
    b = _create(ledger, owner="bob")
    ledger.remove(b)

    restored = PositionLedger.from_json(ledger.to_json())
    assert restored.next_id == 3
    assert restored.ids_of("alice") == [1]
    assert restored.total_shares() == 100
