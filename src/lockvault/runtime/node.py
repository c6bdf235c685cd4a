from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, TypeVar

from lockvault.crypto.sig import verify_call_sig
from lockvault.runtime import errors as E
from lockvault.runtime.clock import Clock, SystemClock
from lockvault.runtime.dispatch import CallEnvelope, apply_call
from lockvault.runtime.errors import VaultError
from lockvault.runtime.events import EventLog, VaultEvent, event_to_json
from lockvault.runtime.gateway import InMemoryBank
from lockvault.runtime.node_config import NodeConfig
from lockvault.runtime.sqlite_db import SqliteVaultStore
from lockvault.runtime.vault import StakingVault
from lockvault.runtime.vault_logging import log_event

Json = Dict[str, Any]

_log = logging.getLogger("lockvault.node")

T = TypeVar("T")

# In-memory feed size for nodes without a store.
DEFAULT_FEED_LIMIT = 10_000


class VaultNode:
    """
    Single-process host for one vault.

    - serializes calls from concurrent API workers into one total order
    - authenticates callers (ed25519 signature + strictly increasing nonce)
    - persists vault + bank + nonces after every committed operation, inside
      the operation's atomic scope
    """

    def __init__(
        self,
        *,
        cfg: NodeConfig,
        store: Optional[SqliteVaultStore] = None,
        clock: Optional[Clock] = None,
        feed_limit: int = DEFAULT_FEED_LIMIT,
    ) -> None:
        self.cfg = cfg
        self._store = store
        self._clock = clock or SystemClock()
        # Reentrant so a recipient hook running inside submit() can still read.
        self._lock = threading.RLock()
        self._events = EventLog()
        self._feed: Deque[Json] = deque(maxlen=max(1, int(feed_limit)))
        self._feed_seq = 0

        snap: Json = store.read() if (store is not None and store.exists()) else {}

        if snap:
            self._bank = InMemoryBank.from_json(snap.get("bank"))
            nonces = snap.get("nonces")
            self._nonces: Dict[str, int] = {str(k): int(v) for k, v in nonces.items()} if isinstance(nonces, dict) else {}
            self._vault = StakingVault.from_json(
                snap.get("vault"),
                params=cfg.vault,
                gateway=self._bank,
                clock=self._clock,
                events=self._events,
                commit_hook=self._persist,
            )
        else:
            self._bank = InMemoryBank(balances=dict(cfg.genesis_balances))
            self._nonces = {}
            self._vault = StakingVault(
                params=cfg.vault,
                gateway=self._bank,
                clock=self._clock,
                events=self._events,
                commit_hook=self._persist,
            )
            if store is not None:
                store.write(self.snapshot())

        if store is None:
            self._events.subscribe(self._remember)

        log_event(
            _log,
            "node_ready",
            mode=cfg.mode,
            restored=bool(snap),
            total_shares=self._vault.total_shares,
            next_id=self._vault.next_id,
        )

    # ----------------------------
    # Accessors
    # ----------------------------

    @property
    def vault(self) -> StakingVault:
        return self._vault

    @property
    def bank(self) -> InMemoryBank:
        return self._bank

    def read(self, fn: Callable[["VaultNode"], T]) -> T:
        """Run a read-only view under the node lock.

        Views never observe an operation that is still in flight (and may yet
        roll back), and several reads inside one view see the same state.
        """
        with self._lock:
            return fn(self)

    def nonce_of(self, caller: str) -> int:
        return int(self._nonces.get(str(caller), 0))

    def snapshot(self) -> Json:
        return {
            "vault": self._vault.to_json(),
            "bank": self._bank.to_json(),
            "nonces": dict(sorted(self._nonces.items())),
        }

    def events_after(self, seq: int = 0, *, limit: int = 100) -> List[Json]:
        if self._store is not None:
            return self._store.events_after(seq, limit=limit)
        lim = max(1, min(int(limit), 1000))
        with self._lock:
            return [e for e in self._feed if int(e["seq"]) > int(seq)][:lim]

    # ----------------------------
    # Calls
    # ----------------------------

    def submit(self, call: Any) -> Json:
        try:
            env = CallEnvelope.from_json(call)
        except (TypeError, ValueError) as e:
            raise VaultError(E.INVALID_INPUT, E.BAD_VALUE, {"error": str(e)}) from e

        with self._lock:
            self._authenticate(env)
            return apply_call(self._vault, env)

    def mint(self, account: str, amount: int) -> int:
        """Dev/testnet faucet. Credits the gateway balance of `account`."""
        if self.cfg.mode == "prod":
            raise VaultError(E.FORBIDDEN, "mint_disabled", {"mode": self.cfg.mode})
        with self._lock:
            before = self._bank.checkpoint()
            self._bank.mint(account, amount)
            try:
                self._write([])
            except Exception:
                self._bank.rollback(before)
                raise
            return self._bank.balance_of(account)

    # ----------------------------
    # Internals
    # ----------------------------

    def _authenticate(self, env: CallEnvelope) -> None:
        if not env.sig:
            if self.cfg.allow_unsigned_calls:
                return
            raise VaultError(E.FORBIDDEN, "signature_required", {"caller": env.caller})

        ok = verify_call_sig(
            op=env.op,
            caller=env.caller,
            nonce=env.nonce,
            value=env.value,
            payload=dict(env.payload or {}),
            sig=env.sig,
        )
        if not ok:
            raise VaultError(E.FORBIDDEN, "bad_signature", {"caller": env.caller})

        last = self.nonce_of(env.caller)
        if int(env.nonce) <= last:
            raise VaultError(E.FORBIDDEN, "stale_nonce", {"caller": env.caller, "nonce": env.nonce, "last": last})

        # Consumed even if the operation itself fails, so a rejected call cannot be replayed.
        self._nonces[env.caller] = int(env.nonce)
        if self._store is not None:
            self._write([])

    def _persist(self, vault: StakingVault, batch: List[VaultEvent]) -> None:
        self._write([event_to_json(ev) for ev in batch])

    def _write(self, events: List[Json]) -> None:
        if self._store is None:
            return
        self._store.write(self.snapshot(), events)

    def _remember(self, ev: VaultEvent) -> None:
        row = event_to_json(ev)
        self._feed_seq += 1
        row["seq"] = self._feed_seq
        self._feed.append(row)
