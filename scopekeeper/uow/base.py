"""
Abstract resource contracts consumed by the scope manager.
"""

from __future__ import annotations

from collections.abc import Hashable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

#: Identity of a persisted entity as understood by the backend
#: (SQLAlchemy identity keys for the bundled backend).
Identity = Hashable


class ScopeOption(str, Enum):
    """How a new scope relates to the ambient one."""

    #: Reuse the ambient collection and defer commit to its owner.
    JOIN_EXISTING = "join_existing"
    #: Always create an independent collection that commits on its own.
    FORCE_CREATE_NEW = "force_create_new"


@runtime_checkable
class ResourceHandle(Protocol):
    """
    A live persistence resource owned by a :class:`ResourceCollection`.

    Query/mutate operations are opaque to the scope manager; it only drives
    the lifecycle below.
    """

    def begin_transaction(self, isolation_level: str) -> None: ...
    def commit(self) -> frozenset[Identity]: ...
    def rollback(self) -> None: ...
    def dispose(self) -> None: ...
    def reload(self, identity: Identity) -> bool: ...
    def identity_of(self, entity: Any) -> Identity | None: ...


class ResourceFactory(Protocol):
    """Create resource handles on demand, at most once per key per owning scope."""

    def create(self, key: str, *, read_only: bool = False) -> ResourceHandle: ...


KNOWN_ISOLATION_LEVELS = frozenset(
    {
        "READ UNCOMMITTED",
        "READ COMMITTED",
        "REPEATABLE READ",
        "SERIALIZABLE",
        "AUTOCOMMIT",
    }
)


def normalize_isolation_level(level: str | None) -> str | None:
    """Upper-case and trim an isolation level; ``None``/blank means backend default.

    Unknown levels are passed through as-is so dialect-specific values keep
    working; the backend rejects them if it does not understand them.
    """
    if level is None:
        return None
    iso = str(level).upper().strip().replace("_", " ")
    return iso or None


def is_known_isolation_level(level: str) -> bool:
    return level in KNOWN_ISOLATION_LEVELS
