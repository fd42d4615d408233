"""
Pytest configuration and fixtures for Cosmo tests.

This module provides shared fixtures used across unit and integration
tests: an in-memory store, a fixed clock, a fresh tool registry and a
dispatcher wired to all three.
"""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from cosmo.errors import StorageReadError, StorageWriteError
from cosmo.rpc import Dispatcher
from cosmo.schema import Capsule, NewCapsule
from cosmo.store import CapsuleDB, CapsuleStore
from cosmo.tools import ToolContext, ToolRegistry, register_capsule_tools
from cosmo.tools.base import MS_PER_DAY

# 2025-10-09 08:53:20 UTC
NOW_MS = 1_760_000_000_000


class FailingStore(CapsuleStore):
    """A store whose every operation fails, counting the attempts."""

    def __init__(self, message: str = "connection refused") -> None:
        self.message = message
        self.calls = 0

    def _fail(self, operation: str):
        self.calls += 1
        raise StorageReadError(operation=operation, underlying_error=self.message)

    def insert(self, capsule):
        self.calls += 1
        raise StorageWriteError(operation="insert", underlying_error=self.message)

    def select_all(self, filter=None, descending=True, limit=None, offset=0):
        self._fail("select_all")

    def count(self, filter=None):
        self._fail("count")

    def get(self, capsule_id):
        self._fail("get")

    def update_by_id(self, capsule_id, content=None, tags=None):
        self._fail("update_by_id")

    def delete_by_id(self, capsule_id):
        self._fail("delete_by_id")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db() -> Generator[CapsuleDB, None, None]:
    """Create an in-memory database."""
    database = CapsuleDB(":memory:")
    yield database
    database.close()


@pytest.fixture
def clock() -> Callable[[], int]:
    """A clock frozen at NOW_MS."""
    return lambda: NOW_MS


@pytest.fixture
def context(db: CapsuleDB, clock: Callable[[], int]) -> ToolContext:
    """Tool context over the in-memory database and fixed clock."""
    return ToolContext(store=db, clock=clock)


@pytest.fixture
def registry() -> ToolRegistry:
    """A fresh registry holding the capsule tools."""
    return register_capsule_tools(ToolRegistry())


@pytest.fixture
def dispatcher(registry: ToolRegistry, context: ToolContext) -> Dispatcher:
    """Dispatcher bound to the fresh registry and in-memory store."""
    return Dispatcher(registry=registry, context_factory=lambda: context)


@pytest.fixture
def add_capsule(db: CapsuleDB) -> Callable[..., Capsule]:
    """
    Insert a capsule directly into the store.

    age_days is measured back from NOW_MS.
    """

    def _add(content: str, tags: list[str] | None = None, age_days: float = 0) -> Capsule:
        return db.insert(
            NewCapsule(
                content=content,
                tags=tags or [],
                timestamp=int(NOW_MS - age_days * MS_PER_DAY),
            )
        )

    return _add


@pytest.fixture
def xy_capsules(add_capsule: Callable[..., Capsule]) -> list[Capsule]:
    """Capsules tagged ["x"], ["y"] and ["x", "y"], newest last."""
    return [
        add_capsule("only x", ["x"], age_days=3),
        add_capsule("only y", ["y"], age_days=2),
        add_capsule("both", ["x", "y"], age_days=1),
    ]


@pytest.fixture
def failing_store() -> FailingStore:
    """A store that fails every operation; check .calls afterwards."""
    return FailingStore()


@pytest.fixture
def rpc() -> Callable[..., dict]:
    """Builder for JSON-RPC request envelopes."""

    def _rpc(method: str, params: dict | None = None, request_id: object = 1) -> dict:
        envelope = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            envelope["params"] = params
        return envelope

    return _rpc


@pytest.fixture
def call_tool(rpc: Callable[..., dict]) -> Callable[..., dict]:
    """Builder for tools/call envelopes."""

    def _call_tool(name: str, arguments: dict | None = None, request_id: object = 1) -> dict:
        params: dict = {"name": name}
        if arguments is not None:
            params["arguments"] = arguments
        return rpc("tools/call", params, request_id)

    return _call_tool
