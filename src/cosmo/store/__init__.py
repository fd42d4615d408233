"""
Storage module for Cosmo.

This module provides the CapsuleStore interface and its SQLite backend.

Tables:
    - capsules: id, content, tags, timestamp, created_at

The process shares one store handle, created on first use by get_store()
and reused for every tool call afterwards.
"""

from pathlib import Path

from cosmo.store.base import CapsuleFilter, CapsuleStore
from cosmo.store.db import CapsuleDB, generate_id

_default_store: CapsuleStore | None = None


def get_store(db_path: str | Path = "cosmo.db") -> CapsuleStore:
    """
    Return the process-wide store, opening it on first use.

    Later calls return the same handle; db_path only matters the first time.
    """
    global _default_store
    if _default_store is None:
        _default_store = CapsuleDB(db_path)
    return _default_store


def reset_store() -> None:
    """Close and forget the process-wide store."""
    global _default_store
    if _default_store is not None:
        _default_store.close()
        _default_store = None


__all__ = [
    "CapsuleDB",
    "CapsuleFilter",
    "CapsuleStore",
    "generate_id",
    "get_store",
    "reset_store",
]
