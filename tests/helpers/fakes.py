"""In-memory resource backend recording every lifecycle call."""

from __future__ import annotations

from typing import Any


class FakeHandle:
    """Resource handle storing staged and durable rows in plain dicts."""

    def __init__(self, key: str, store: dict[str, dict[Any, Any]], *, read_only: bool) -> None:
        self.key = key
        self.read_only = read_only
        self.durable = store.setdefault(key, {})
        self.pending: dict[Any, Any] = {}
        self.cache: dict[Any, Any] = {}
        self.calls: list[str] = []
        self.isolation_level: str | None = None
        self.fail_on: set[str] = set()

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed on {self.key}")

    # Query/mutate surface used by tests
    def put(self, identity: Any, value: Any) -> None:
        self.pending[identity] = value

    def load(self, identity: Any) -> Any:
        if identity not in self.cache:
            self.cache[identity] = self.durable.get(identity)
        return self.cache[identity]

    # Lifecycle
    def begin_transaction(self, isolation_level: str) -> None:
        self._record("begin_transaction")
        self.isolation_level = isolation_level

    def commit(self) -> frozenset:
        self._record("commit")
        self.durable.update(self.pending)
        committed = frozenset(self.pending)
        self.pending.clear()
        return committed

    def rollback(self) -> None:
        self._record("rollback")
        self.pending.clear()

    def dispose(self) -> None:
        self._record("dispose")

    def reload(self, identity: Any) -> bool:
        if identity not in self.cache or identity in self.pending:
            return False
        self.calls.append("reload")
        self.cache[identity] = self.durable.get(identity)
        return True

    def identity_of(self, entity: Any) -> Any:
        return entity if entity in self.pending or entity in self.durable else None


class FakeResourceFactory:
    """Create :class:`FakeHandle` objects sharing one durable store per key."""

    def __init__(self) -> None:
        self.store: dict[str, dict[Any, Any]] = {}
        self.created: list[FakeHandle] = []
        self.fail_create: set[str] = set()

    def create(self, key: str, *, read_only: bool = False) -> FakeHandle:
        if key in self.fail_create:
            raise ConnectionError(f"cannot connect to {key}")
        handle = FakeHandle(key, self.store, read_only=read_only)
        self.created.append(handle)
        return handle
