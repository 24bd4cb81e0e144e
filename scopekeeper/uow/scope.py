"""
The ambient unit of work.

A :class:`ResourceScope` either *owns* a fresh :class:`ResourceCollection`
(root or force-created scope) or *borrows* the collection of the ambient scope
it joined. Only owners commit, roll back and dispose resources; a chain of
joined scopes therefore behaves as one atomic unit that becomes durable when
the owner commits, and not before.

Typical usage::

    def create_students(specs):
        with ResourceScope(factory) as scope:
            for spec in specs:
                create_student(spec)      # opens a joined scope internally
            scope.commit()                # the only durable commit
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any
from uuid import uuid4

from scopekeeper.core.config import DEFAULT_KEY
from scopekeeper.core.errors import (
    AmbientStackCorrupted,
    ArgumentInvalid,
    InvalidOperation,
    ObjectDisposed,
)
from scopekeeper.uow.ambient import AmbientSlot, default_slot
from scopekeeper.uow.base import (
    Identity,
    ResourceFactory,
    ResourceHandle,
    ScopeOption,
    is_known_isolation_level,
    normalize_isolation_level,
)
from scopekeeper.uow.collection import ResourceCollection
from scopekeeper.uow.refresh import refresh_in_ancestors

log = logging.getLogger(__name__)


class ScopeState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    DISPOSED = "disposed"


class ResourceScope:
    """
    Unit of work shared implicitly by nested calls of the same logical flow.

    Parameters
    ----------
    factory:
        Backend factory producing resource handles for owning scopes.
    join_option:
        :attr:`ScopeOption.JOIN_EXISTING` (default) reuses the ambient scope's
        collection when there is one; :attr:`ScopeOption.FORCE_CREATE_NEW`
        always creates an isolated collection that commits independently.
    read_only:
        Disallow :meth:`commit`; owned handles are created read-only.
    isolation_level:
        Explicit transaction isolation level for owned handles. A joining scope
        may only repeat the level of the collection it joins.
    slot:
        Ambient storage; defaults to the process-wide
        :data:`~scopekeeper.uow.ambient.default_slot`.
    default_key:
        Resource key used by :meth:`get` when none is given.

    Notes
    -----
    The join/isolate decision is taken on activation (``with`` entry or
    :meth:`activate`), not at construction time.
    """

    def __init__(
        self,
        factory: ResourceFactory,
        *,
        join_option: ScopeOption | str = ScopeOption.JOIN_EXISTING,
        read_only: bool = False,
        isolation_level: str | None = None,
        slot: AmbientSlot | None = None,
        default_key: str = DEFAULT_KEY,
    ) -> None:
        if factory is None:
            raise ArgumentInvalid("A resource factory is required to create a scope.")
        try:
            self.join_option = ScopeOption(join_option)
        except ValueError as exc:
            raise ArgumentInvalid(
                f"Unknown join option {join_option!r}.",
                details={"allowed": [o.value for o in ScopeOption]},
            ) from exc
        if not default_key:
            raise ArgumentInvalid("default_key must be a non-empty string.")

        self.id = uuid4().hex
        self.factory = factory
        self.read_only = bool(read_only)
        self.isolation_level = normalize_isolation_level(isolation_level)
        if self.isolation_level and not is_known_isolation_level(self.isolation_level):
            log.warning("Unknown isolation_level '%s'; attempting as-is.", self.isolation_level)
        self.slot = slot if slot is not None else default_slot
        self.default_key = default_key

        self.state = ScopeState.CREATED
        self.parent: ResourceScope | None = None
        self.owns_collection = False
        self.committed = False
        self.committed_identities: dict[str, frozenset[Identity]] = {}
        self._collection: ResourceCollection | None = None
        self._previous: ResourceScope | None = None

    def __repr__(self) -> str:
        mode = "owning" if self.owns_collection else "borrowing"
        access = "ro" if self.read_only else "rw"
        return f"<ResourceScope id={self.id[:8]} {mode} {access} {self.state.value}>"

    # ------------------------------- State ---------------------------------

    @property
    def disposed(self) -> bool:
        return self.state is ScopeState.DISPOSED

    @property
    def depth(self) -> int:
        """Number of scopes on the parent chain, this one included."""
        depth, scope = 0, self
        while scope is not None:
            depth += 1
            scope = scope.parent
        return depth

    @property
    def collection(self) -> ResourceCollection:
        """The owned collection, or the borrowed one of the joined ancestor."""
        self._ensure_active("access resources")
        assert self._collection is not None
        return self._collection

    @property
    def bound_collection(self) -> ResourceCollection | None:
        """Collection bound on activation; still set after :meth:`dispose`."""
        return self._collection

    def _ensure_active(self, action: str) -> None:
        if self.state is ScopeState.DISPOSED:
            raise ObjectDisposed(
                f"Cannot {action}: scope {self.id} has already been disposed.",
                details={"scope_id": self.id},
            )
        if self.state is ScopeState.CREATED:
            raise InvalidOperation(
                f"Cannot {action}: scope {self.id} has not been entered yet. "
                "Use it as a context manager or call activate().",
                details={"scope_id": self.id},
            )

    # ----------------------------- Activation ------------------------------

    def activate(self) -> ResourceScope:
        """Join or isolate against the ambient scope and become the ambient scope."""
        if self.state is ScopeState.DISPOSED:
            raise ObjectDisposed(details={"scope_id": self.id})
        if self.state is ScopeState.ACTIVE:
            raise InvalidOperation(f"Scope {self.id} is already active.")

        ambient = self.slot.peek()
        if self.join_option is ScopeOption.JOIN_EXISTING and ambient is not None:
            self._check_joinable(ambient)
            self._collection = ambient.collection
            self.owns_collection = False
            log.debug("Scope %s joined ambient scope %s", self.id, ambient.id)
        else:
            self._collection = ResourceCollection(
                self.factory,
                read_only=self.read_only,
                isolation_level=self.isolation_level,
            )
            self.owns_collection = True
            log.debug(
                "Scope %s created its own collection (option=%s, read_only=%s, isolation=%s)",
                self.id,
                self.join_option.value,
                self.read_only,
                self.isolation_level,
            )

        # Force-created scopes keep the reference too: the refresh bridge walks it.
        self.parent = ambient
        self._previous = self.slot.push(self)
        self.state = ScopeState.ACTIVE
        return self

    def _check_joinable(self, ambient: ResourceScope) -> None:
        if ambient.read_only and not self.read_only:
            raise InvalidOperation(
                "Cannot nest a read/write scope within a read-only scope.",
                details={"scope_id": self.id, "ambient_id": ambient.id},
            )
        joined_level = ambient.collection.isolation_level
        if self.isolation_level and self.isolation_level != joined_level:
            raise InvalidOperation(
                f"Cannot join a scope running at isolation level {joined_level or 'default'!r} "
                f"with isolation level {self.isolation_level!r}. "
                "Use ScopeOption.FORCE_CREATE_NEW to get an independent transaction.",
                details={
                    "scope_id": self.id,
                    "ambient_id": ambient.id,
                    "requested": self.isolation_level,
                    "ambient": joined_level,
                },
            )

    # ------------------------------ Resources ------------------------------

    def get(self, key: str | None = None) -> ResourceHandle:
        """Return the handle for ``key`` from the (owned or borrowed) collection."""
        self._ensure_active("request a resource")
        assert self._collection is not None
        return self._collection.get_or_create(key or self.default_key)

    def session(self, key: str | None = None) -> Any:
        """Shortcut for ``scope.get(key).session`` on SQLAlchemy-backed handles."""
        return self.get(key).session

    # ------------------------------- Commit --------------------------------

    def commit(self) -> int:
        """Persist the collection's pending work if this scope owns it.

        :returns: Number of entities committed; ``0`` for borrowing scopes and
            for repeated calls.
        :raises InvalidOperation: On read-only scopes.
        :raises ObjectDisposed: After :meth:`dispose`.
        """
        self._ensure_active("commit")
        if self.read_only:
            raise InvalidOperation(
                "Read-only scopes do not allow commit().", details={"scope_id": self.id}
            )
        if not self.owns_collection:
            # The owning ancestor commits the whole joined chain at once.
            log.debug("Scope %s is joined; commit deferred to its owner", self.id)
            return 0
        if self.committed:
            return 0

        assert self._collection is not None
        identities = self._collection.commit()
        self.committed = True
        self.committed_identities = identities
        count = sum(len(ids) for ids in identities.values())
        log.debug("Scope %s committed %d entities", self.id, count)
        return count

    async def commit_async(self) -> int:
        """Run :meth:`commit` in a worker thread carrying the current context."""
        return await asyncio.to_thread(self.commit)

    # ------------------------------- Refresh -------------------------------

    def refresh_entities_in_parent_scope(self, entities: Iterable[Any] | None = None) -> int:
        """Reload, in ancestor scopes, entities this scope committed.

        :param entities: Entities whose state should be reloaded upstream.
            Defaults to everything the last :meth:`commit` persisted.
        :returns: Number of ancestor-cached entities reloaded.
        """
        self._ensure_active("refresh parent scopes")
        if not self.owns_collection:
            return 0
        if entities is None:
            identities: Mapping[str, Iterable[Identity]] = self.committed_identities
        else:
            identities = self._identities_of(list(entities))
        return refresh_in_ancestors(self, identities)

    def _identities_of(self, entities: list[Any]) -> dict[str, frozenset[Identity]]:
        assert self._collection is not None
        grouped: dict[str, frozenset[Identity]] = {}
        for key, handle in self._collection.handles():
            ids = {handle.identity_of(entity) for entity in entities}
            ids.discard(None)
            if ids:
                grouped[key] = frozenset(ids)
        return grouped

    # ------------------------------- Dispose -------------------------------

    def dispose(self) -> None:
        """Release everything this scope owns and pop it from the ambient slot.

        Idempotent. Owned, uncommitted work is rolled back. Backend errors
        propagate once every release step has run.
        """
        if self.state is ScopeState.DISPOSED:
            return
        if self.state is ScopeState.CREATED:
            self.state = ScopeState.DISPOSED
            return

        release_error: BaseException | None = None
        try:
            if self.owns_collection:
                self._release_collection()
        except BaseException as exc:
            release_error = exc
            raise
        finally:
            self.state = ScopeState.DISPOSED
            previous, self._previous = self._previous, None
            try:
                self.slot.pop(self, previous)
            except AmbientStackCorrupted as corrupted:
                if release_error is None:
                    raise
                log.error("Scope %s failed to release its resources", self.id, exc_info=release_error)
                raise corrupted from release_error
            log.debug("Scope %s disposed (committed=%s)", self.id, self.committed)

    def _release_collection(self) -> None:
        assert self._collection is not None
        try:
            if not self.committed:
                self._collection.rollback()
        finally:
            self._collection.dispose()

    # ---------------------------- Context manager --------------------------

    def __enter__(self) -> ResourceScope:
        return self.activate()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    async def __aenter__(self) -> ResourceScope:
        return self.activate()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # The ambient value must be restored in this context, not in a worker thread.
        self.dispose()
