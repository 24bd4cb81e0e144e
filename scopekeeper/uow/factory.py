"""
Entry points used by service-layer code.

``ScopeFactory`` creates scopes with the common option combinations and
``ResourceLocator`` lets repositories reach the ambient scope's handles without
having the scope passed through every call.
"""

from __future__ import annotations

from typing import Any

from scopekeeper.core.config import DEFAULT_KEY
from scopekeeper.core.errors import ArgumentInvalid, InvalidOperation
from scopekeeper.uow.ambient import AmbientSlot, SuppressionToken, default_slot
from scopekeeper.uow.base import ResourceFactory, ResourceHandle, ScopeOption
from scopekeeper.uow.scope import ResourceScope


class ScopeFactory:
    """
    Create :class:`ResourceScope` instances bound to one resource factory.

    Parameters
    ----------
    resource_factory:
        Backend factory shared by every scope this factory creates.
    slot:
        Ambient storage; defaults to the process-wide slot.
    default_key:
        Resource key used by ``scope.get()`` without arguments.
    default_isolation_level:
        Level used by the ``*_with_transaction`` helpers when none is given.
    """

    def __init__(
        self,
        resource_factory: ResourceFactory,
        *,
        slot: AmbientSlot | None = None,
        default_key: str = DEFAULT_KEY,
        default_isolation_level: str | None = None,
    ) -> None:
        if resource_factory is None:
            raise ArgumentInvalid("A resource factory is required.")
        self.resource_factory = resource_factory
        self.slot = slot if slot is not None else default_slot
        self.default_key = default_key
        self.default_isolation_level = default_isolation_level

    def _scope(self, **kwargs: Any) -> ResourceScope:
        return ResourceScope(
            self.resource_factory,
            slot=self.slot,
            default_key=self.default_key,
            **kwargs,
        )

    def create(self, join_option: ScopeOption | str = ScopeOption.JOIN_EXISTING) -> ResourceScope:
        """Read-write scope; joins the ambient scope unless told otherwise."""
        return self._scope(join_option=join_option)

    def create_read_only(
        self, join_option: ScopeOption | str = ScopeOption.JOIN_EXISTING
    ) -> ResourceScope:
        """Read-only scope; may join a read-only or read-write ambient scope."""
        return self._scope(join_option=join_option, read_only=True)

    def create_with_transaction(self, isolation_level: str | None = None) -> ResourceScope:
        """Independent read-write scope running an explicit transaction."""
        level = isolation_level or self.default_isolation_level
        if not level:
            raise ArgumentInvalid("An isolation level is required for an explicit transaction.")
        return self._scope(join_option=ScopeOption.FORCE_CREATE_NEW, isolation_level=level)

    def create_read_only_with_transaction(self, isolation_level: str | None = None) -> ResourceScope:
        """Independent read-only scope running an explicit transaction."""
        level = isolation_level or self.default_isolation_level
        if not level:
            raise ArgumentInvalid("An isolation level is required for an explicit transaction.")
        return self._scope(
            join_option=ScopeOption.FORCE_CREATE_NEW,
            read_only=True,
            isolation_level=level,
        )

    def suppress_ambient_context(self) -> SuppressionToken:
        """Hide the ambient scope before fanning out to concurrent workers."""
        return self.slot.suppress()


class ResourceLocator:
    """Resolve resource handles from the ambient scope."""

    def __init__(self, slot: AmbientSlot | None = None) -> None:
        self.slot = slot if slot is not None else default_slot

    def has_ambient_scope(self) -> bool:
        return self.slot.peek() is not None

    def get(self, key: str | None = None) -> ResourceHandle:
        """Return the ambient scope's handle for ``key``.

        :raises InvalidOperation: When called outside of any scope.
        """
        scope = self.slot.peek()
        if scope is None:
            raise InvalidOperation(
                "No ambient scope found. Resource handles can only be requested inside "
                "a scope: wrap the calling service method in "
                "'with scope_factory.create() as scope:' (or create_read_only()).",
                details={"resource_key": key},
            )
        return scope.get(key)

    def session(self, key: str | None = None) -> Any:
        return self.get(key).session


__all__ = ["ScopeFactory", "ResourceLocator"]
