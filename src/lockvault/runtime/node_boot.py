from __future__ import annotations

from typing import Optional

from lockvault.runtime.clock import Clock
from lockvault.runtime.node import VaultNode
from lockvault.runtime.node_config import NodeConfig, load_node_config
from lockvault.runtime.sqlite_db import SqliteDB, SqliteVaultStore


def build_node(cfg: Optional[NodeConfig] = None, *, clock: Optional[Clock] = None) -> VaultNode:
    """Build a VaultNode backed by the SQLite file named in the node config.

    Restores the persisted vault when the DB already holds a snapshot; the
    configured vault params must match the stored ones.
    """
    c = cfg or load_node_config()
    store = SqliteVaultStore(db=SqliteDB(path=c.db_path))
    return VaultNode(cfg=c, store=store, clock=clock)
