# src/lockvault/runtime/vault.py
"""Staking vault orchestrator.

Composes the position ledger, the reward accumulator and the penalty curve
into four mutating operations: deposit, withdraw, ragequit, harvest_profit.

Every mutating operation:

  1. holds the reentrancy guard for its whole duration
  2. runs checks, then ledger/accumulator effects, then gateway transfers
  3. is fail-atomic: on any error the ledger, the accumulator and (when the
     gateway is journaled) the gateway are restored to their prior state
  4. publishes its notifications only after committing and releasing the guard
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from lockvault.ledger.accumulator import RewardAccumulator
from lockvault.ledger.penalty import compute_penalty
from lockvault.ledger.positions import PositionLedger
from lockvault.ledger.types import PenaltyQuote, Position
from lockvault.runtime import errors as E
from lockvault.runtime.clock import Clock
from lockvault.runtime.errors import VaultError
from lockvault.runtime.events import (
    Deposited,
    EventLog,
    Harvested,
    PenaltyDistributed,
    Ragequit,
    VaultEvent,
    Withdrawn,
)
from lockvault.runtime.gateway import JournaledGateway, TransferGateway
from lockvault.runtime.guard import ReentrancyGuard
from lockvault.runtime.metrics import inc_counter, set_gauge
from lockvault.runtime.node_config import VaultParams, validate_vault_params, vault_params_from_json
from lockvault.runtime.vault_logging import log_event, log_failure

Json = Dict[str, Any]

# Runs inside the operation's atomic scope once all transfers succeeded;
# raising from it rolls the whole operation back.
CommitHook = Callable[["StakingVault", List[VaultEvent]], None]

_log = logging.getLogger("lockvault.vault")


def _as_amount(v: Any, *, field: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise VaultError(E.INVALID_INPUT, E.BAD_VALUE, {"field": field, "value": repr(v)})
    return int(v)


class StakingVault:
    def __init__(
        self,
        *,
        params: VaultParams,
        gateway: TransferGateway,
        clock: Clock,
        events: Optional[EventLog] = None,
        ledger: Optional[PositionLedger] = None,
        accumulator: Optional[RewardAccumulator] = None,
        commit_hook: Optional[CommitHook] = None,
    ) -> None:
        validate_vault_params(params)
        self._params = params
        self._gateway = gateway
        self._clock = clock
        self._events = events if events is not None else EventLog()
        self._ledger = ledger if ledger is not None else PositionLedger()
        self._acc = accumulator if accumulator is not None else RewardAccumulator()
        self._guard = ReentrancyGuard()
        self._commit_hook = commit_hook

    # ----------------------------
    # Read-only accessors (no lock)
    # ----------------------------

    @property
    def params(self) -> VaultParams:
        return self._params

    @property
    def max_penalty_bps(self) -> int:
        return self._params.max_penalty_bps

    @property
    def treasury_fee_bps(self) -> int:
        return self._params.treasury_fee_bps

    @property
    def treasury(self) -> str:
        return self._params.treasury

    @property
    def total_shares(self) -> int:
        return self._acc.total_shares

    @property
    def acc_penalty_per_share(self) -> int:
        return self._acc.acc_penalty_per_share

    @property
    def next_id(self) -> int:
        return self._ledger.next_id

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def gateway(self) -> TransferGateway:
        return self._gateway

    @property
    def clock(self) -> Clock:
        return self._clock

    def positions(self, position_id: int) -> Tuple[str, int, int, int, int]:
        """Full tuple for an id; the all-zero tuple when absent."""
        pos = self._ledger.read(position_id)
        return (pos or Position.empty()).as_tuple()

    def position(self, position_id: int) -> Optional[Position]:
        return self._ledger.read(position_id)

    def positions_of(self, owner: str) -> List[int]:
        return self._ledger.ids_of(owner)

    def pending_reward(self, position_id: int) -> int:
        pos = self._ledger.read(position_id)
        if pos is None:
            return 0
        return self._acc.pending_reward(pos)

    def quote_ragequit(self, position_id: int) -> PenaltyQuote:
        pos = self._ledger.read(position_id)
        now = self._clock.now()
        if pos is None or pos.matured(now):
            return PenaltyQuote.zero()
        return self._quote(pos, now)

    # ----------------------------
    # Mutating operations
    # ----------------------------

    def deposit(self, caller: str, value: Any, duration: Any) -> int:
        with self._operation("deposit") as batch:
            owner = self._require_caller(caller)
            amount = _as_amount(value, field="value")
            secs = _as_amount(duration, field="duration")
            if amount <= 0:
                raise VaultError(E.INVALID_INPUT, E.ZERO_DEPOSIT, {"value": amount})
            if secs <= 0:
                raise VaultError(E.INVALID_INPUT, E.ZERO_DURATION, {"duration": secs})

            now = self._clock.now()
            pid = self._ledger.create(
                owner=owner,
                shares=amount,
                start=now,
                unlock_at=now + secs,
                reward_debt=self._acc.accrued(amount),
            )
            self._acc.add_shares(amount)

            if not self._gateway.collect(owner, amount):
                raise VaultError(E.TRANSFER_FAILED, E.COLLECT_FAILED, {"from": owner, "amount": amount})

            batch.append(Deposited(id=pid, owner=owner, amount=amount, duration=secs))
        return pid

    def withdraw(self, caller: str, position_id: int) -> int:
        with self._operation("withdraw") as batch:
            pid, pos = self._require_owned(caller, position_id)
            now = self._clock.now()
            if not pos.matured(now):
                raise VaultError(E.INVALID_STATE, E.STAKE_NOT_MATURED, {"id": pid, "unlock_at": pos.unlock_at, "now": now})

            reward = self._acc.pending_reward(pos)
            self._acc.remove_shares(pos.shares)
            self._ledger.remove(pid)

            amount = pos.shares + reward
            self._pay(pos.owner, amount, E.TRANSFER_TO_OWNER_FAILED)

            batch.append(Withdrawn(id=pid, owner=pos.owner, principal=pos.shares, reward=reward))
        return amount

    def ragequit(self, caller: str, position_id: int) -> int:
        with self._operation("ragequit") as batch:
            pid, pos = self._require_owned(caller, position_id)
            now = self._clock.now()
            if pos.matured(now):
                raise VaultError(E.INVALID_STATE, E.ALREADY_MATURED, {"id": pid, "unlock_at": pos.unlock_at, "now": now})

            # Priced before the penalty is indexed: the leaver takes no share of its own penalty.
            reward = self._acc.pending_reward(pos)
            quote = self._quote(pos, now)

            dist = self._acc.distribute(quote.to_stakers, excluded_shares=pos.shares)
            self._acc.remove_shares(pos.shares)
            self._ledger.remove(pid)

            to_treasury = quote.treasury_fee + dist.to_treasury
            payout = pos.shares - quote.penalty + reward

            self._pay(self._params.treasury, to_treasury, E.TRANSFER_TO_TREASURY_FAILED)
            self._pay(pos.owner, payout, E.TRANSFER_TO_OWNER_FAILED)

            if dist.remaining_shares > 0:
                batch.append(PenaltyDistributed(amount_to_stakers=dist.indexed, new_index=dist.new_index))
            batch.append(Ragequit(id=pid, owner=pos.owner, penalty=quote.penalty, payout=payout))
        return payout

    def harvest_profit(self, caller: str, position_id: int) -> int:
        with self._operation("harvest_profit") as batch:
            pid, pos = self._require_owned(caller, position_id)
            reward = self._acc.pending_reward(pos)
            if reward <= 0:
                raise VaultError(E.INVALID_STATE, E.NOTHING_TO_HARVEST, {"id": pid})

            self._ledger.replace(pid, pos.with_reward_debt(self._acc.settle(pos)))
            self._pay(pos.owner, reward, E.TRANSFER_TO_OWNER_FAILED)

            batch.append(Harvested(id=pid, owner=pos.owner, reward=reward))
        return reward

    def receive(self, caller: str, value: Any) -> None:
        """Inbound value with no matching operation is never accepted."""
        raise VaultError(E.REJECTED, E.UNSOLICITED_TRANSFER, {"from": str(caller or ""), "value": repr(value)})

    # ----------------------------
    # Invariants / persistence
    # ----------------------------

    def check_invariants(self) -> None:
        """Raise VaultError(invalid_state) if the ledger and accumulator disagree."""
        summed = self._ledger.total_shares()
        if summed != self._acc.total_shares:
            raise VaultError(
                E.INVALID_STATE,
                "total_shares_mismatch",
                {"ledger": summed, "accumulator": self._acc.total_shares},
            )
        for pid, pos in self._ledger.items():
            if pos.reward_debt > self._acc.accrued(pos.shares):
                raise VaultError(E.INVALID_STATE, "reward_debt_exceeds_accrued", {"id": pid})

    def to_json(self) -> Json:
        return {
            "params": self._params.to_json(),
            "ledger": self._ledger.to_json(),
            "accumulator": self._acc.to_json(),
        }

    @classmethod
    def from_json(
        cls,
        j: Any,
        *,
        params: VaultParams,
        gateway: TransferGateway,
        clock: Clock,
        events: Optional[EventLog] = None,
        commit_hook: Optional[CommitHook] = None,
    ) -> "StakingVault":
        d = j if isinstance(j, dict) else {}
        # Every stored field must be present and valid.
        stored = vault_params_from_json(d.get("params"))
        if stored != params:
            raise VaultError(
                E.INVALID_INPUT,
                E.INVALID_CONFIG,
                {"reason": "params_immutable", "stored": stored.to_json(), "configured": params.to_json()},
            )
        vault = cls(
            params=params,
            gateway=gateway,
            clock=clock,
            events=events,
            ledger=PositionLedger.from_json(d.get("ledger")),
            accumulator=RewardAccumulator.from_json(d.get("accumulator")),
            commit_hook=commit_hook,
        )
        vault.check_invariants()
        return vault

    # ----------------------------
    # Internals
    # ----------------------------

    @contextmanager
    def _operation(self, op: str) -> Iterator[List[VaultEvent]]:
        batch: List[VaultEvent] = []
        try:
            with self._guard.hold(op):
                ledger_before = copy.deepcopy(self._ledger)
                acc_before = copy.deepcopy(self._acc)
                token = self._gateway.checkpoint() if isinstance(self._gateway, JournaledGateway) else None
                try:
                    yield batch
                    if self._commit_hook is not None:
                        self._commit_hook(self, batch)
                except Exception:
                    self._ledger = ledger_before
                    self._acc = acc_before
                    if isinstance(self._gateway, JournaledGateway):
                        self._gateway.rollback(token)
                    raise
        except Exception as e:
            inc_counter("ops_failed_total")
            inc_counter(f"{op}_failed_total")
            if isinstance(e, VaultError):
                log_failure(_log, "vault_op_failed", op=op, code=e.code, reason=e.reason, details=e.details)
            else:
                # Commit hook or gateway bug; state is already restored.
                log_failure(_log, "vault_op_failed", op=op, code="internal", reason=type(e).__name__, details=str(e))
            raise

        inc_counter("ops_total")
        inc_counter(f"{op}_total")
        set_gauge("total_shares", self._acc.total_shares)
        set_gauge("live_positions", len(self._ledger))
        log_event(
            _log,
            "vault_op",
            op=op,
            events=[type(ev).__name__ for ev in batch],
            ids=sorted({ev.id for ev in batch if hasattr(ev, "id")}),
        )

        self._events.publish(batch)

    def _require_caller(self, caller: Any) -> str:
        c = str(caller or "").strip() if isinstance(caller, str) else ""
        if not c:
            raise VaultError(E.FORBIDDEN, E.MISSING_CALLER, {})
        return c

    def _require_owned(self, caller: Any, position_id: Any) -> Tuple[int, Position]:
        who = self._require_caller(caller)
        pid = _as_amount(position_id, field="id")
        pos = self._ledger.read(pid)
        if pos is None:
            raise VaultError(E.NOT_FOUND, E.POSITION_DOES_NOT_EXIST, {"id": pid})
        if pos.owner != who:
            raise VaultError(E.FORBIDDEN, E.NOT_OWNER, {"id": pid, "caller": who})
        return pid, pos

    def _quote(self, pos: Position, now: int) -> PenaltyQuote:
        return compute_penalty(
            max_penalty_bps=self._params.max_penalty_bps,
            treasury_fee_bps=self._params.treasury_fee_bps,
            principal=pos.shares,
            start=pos.start,
            unlock_at=pos.unlock_at,
            now=now,
        )

    def _pay(self, to: str, amount: int, failure_reason: str) -> None:
        if amount <= 0:
            return
        if not self._gateway.transfer(to, amount):
            raise VaultError(E.TRANSFER_FAILED, failure_reason, {"to": to, "amount": amount})
