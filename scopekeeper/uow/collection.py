"""
Lazily created resource handles sharing one lifetime.
"""

from __future__ import annotations

import logging

from scopekeeper.core.errors import ArgumentInvalid, ObjectDisposed
from scopekeeper.uow.base import Identity, ResourceFactory, ResourceHandle

log = logging.getLogger(__name__)


class ResourceCollection:
    """
    Cache at most one handle per key for the lifetime of the owning scope.

    The collection is not thread-safe: it must only be used by the logical
    flow that owns it (and the scopes joined onto it).

    Parameters
    ----------
    factory:
        Backend factory invoked once per key.
    read_only:
        Forwarded to the factory so handles can skip change tracking and
        install write guards.
    isolation_level:
        When set, every handle opens an explicit transaction at this level
        right after creation.
    """

    def __init__(
        self,
        factory: ResourceFactory,
        *,
        read_only: bool = False,
        isolation_level: str | None = None,
    ) -> None:
        if factory is None:
            raise ArgumentInvalid("A resource factory is required.")
        self.factory = factory
        self.read_only = read_only
        self.isolation_level = isolation_level
        self._handles: dict[str, ResourceHandle] = {}
        self.disposed = False

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def get_or_create(self, key: str) -> ResourceHandle:
        """Return the cached handle for ``key``, creating it on first use."""
        if self.disposed:
            raise ObjectDisposed("The resource collection has already been disposed.")
        handle = self._handles.get(key)
        if handle is not None:
            return handle

        handle = self.factory.create(key, read_only=self.read_only)
        if self.isolation_level:
            try:
                handle.begin_transaction(self.isolation_level)
            except Exception:
                handle.dispose()
                raise
        self._handles[key] = handle
        log.debug("Created resource handle for key=%s", key, extra={"resource_key": key})
        return handle

    def get_cached(self, key: str) -> ResourceHandle | None:
        """Return the handle for ``key`` without creating one."""
        return self._handles.get(key)

    def handles(self) -> list[tuple[str, ResourceHandle]]:
        """Snapshot of ``(key, handle)`` pairs in creation order."""
        return list(self._handles.items())

    def commit(self) -> dict[str, frozenset[Identity]]:
        """Commit every handle and return the committed identities per key.

        Every handle is attempted; the first backend error is re-raised
        unchanged once all of them were tried.
        """
        committed: dict[str, frozenset[Identity]] = {}
        first_error: BaseException | None = None
        for key, handle in self._handles.items():
            try:
                committed[key] = handle.commit()
            except Exception as exc:
                log.error("Commit failed for key=%s", key, exc_info=True)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error
        return committed

    def rollback(self) -> None:
        """Discard pending work on every handle (first error re-raised last)."""
        first_error: BaseException | None = None
        for key, handle in self._handles.items():
            try:
                handle.rollback()
            except Exception as exc:
                log.error("Rollback failed for key=%s", key, exc_info=True)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def dispose(self) -> None:
        """Dispose every cached handle exactly once. Second call is a no-op."""
        if self.disposed:
            return
        self.disposed = True
        handles, self._handles = self._handles, {}
        first_error: BaseException | None = None
        for key, handle in handles.items():
            try:
                handle.dispose()
            except Exception as exc:
                log.error("Dispose failed for key=%s", key, exc_info=True)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error
