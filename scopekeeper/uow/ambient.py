"""
Flow-scoped storage for the ambient scope.

The visible scope lives in a :class:`contextvars.ContextVar` by default, so it
follows the logical call flow: it survives ``await`` and is copied into tasks
created while it is visible, but plain threads start without it.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Protocol

from scopekeeper.core.errors import AmbientStackCorrupted

if TYPE_CHECKING:
    from scopekeeper.uow.scope import ResourceScope

log = logging.getLogger(__name__)


class AmbientStore(Protocol):
    """Backing storage of an :class:`AmbientSlot`."""

    def get(self) -> ResourceScope | None: ...
    def set(self, value: ResourceScope | None) -> None: ...


class ContextVarStore:
    """Store the ambient value in a ``ContextVar`` (follows async continuations)."""

    def __init__(self, name: str = "scopekeeper_ambient_scope") -> None:
        self._var: ContextVar[ResourceScope | None] = ContextVar(name, default=None)

    def get(self) -> ResourceScope | None:
        return self._var.get()

    def set(self, value: ResourceScope | None) -> None:
        self._var.set(value)


class LocalStore:
    """Plain in-memory store; lets tests swap out the process-wide context variable."""

    def __init__(self) -> None:
        self.value: ResourceScope | None = None
        self.writes = 0

    def get(self) -> ResourceScope | None:
        return self.value

    def set(self, value: ResourceScope | None) -> None:
        self.writes += 1
        self.value = value


class AmbientSlot:
    """
    Strict push/pop stack of visible scopes.

    Only the top of the stack is stored; the rest of the chain is reachable
    through each scope's ``parent`` reference.
    """

    def __init__(self, store: AmbientStore | None = None) -> None:
        self._store: AmbientStore = store if store is not None else ContextVarStore()

    def peek(self) -> ResourceScope | None:
        """Return the visible scope, or ``None``."""
        return self._store.get()

    def depth(self) -> int:
        """Return how many scopes are chained under (and including) the visible one."""
        scope = self.peek()
        depth = 0
        while scope is not None:
            depth += 1
            scope = scope.parent
        return depth

    def push(self, scope: ResourceScope) -> ResourceScope | None:
        """Make ``scope`` visible and return the previously visible value."""
        previous = self._store.get()
        self._store.set(scope)
        return previous

    def pop(self, scope: ResourceScope, previous: ResourceScope | None) -> None:
        """Restore ``previous``; ``scope`` must be the visible value.

        :raises AmbientStackCorrupted: When scopes are disposed out of order
            or from a different logical flow than the one that pushed them.
        """
        current = self._store.get()
        if current is not scope:
            raise AmbientStackCorrupted(
                "Ambient scope mismatch on pop: scopes must be disposed in the reverse "
                "order of their creation, within the flow that created them.",
                details={
                    "expected": getattr(scope, "id", None),
                    "found": getattr(current, "id", None),
                },
            )
        self._store.set(previous)

    def suppress(self) -> SuppressionToken:
        """Hide the visible scope until the returned token is released."""
        saved = self._store.get()
        self._store.set(None)
        if saved is not None:
            log.debug("Ambient scope %s suppressed", saved.id)
        return SuppressionToken(self, saved)


class SuppressionToken:
    """
    Restore a suppressed ambient scope on release.

    Use it immediately before fanning out to concurrently scheduled workers so
    each of them creates its own root scope::

        with slot.suppress():
            await asyncio.gather(*(worker(i) for i in ids))
    """

    def __init__(self, slot: AmbientSlot, saved: ResourceScope | None) -> None:
        self._slot = slot
        self._saved = saved
        self.released = False

    @property
    def saved(self) -> ResourceScope | None:
        return self._saved

    def release(self) -> None:
        """Restore the pre-suppression value. Second call is a no-op.

        :raises AmbientStackCorrupted: If a scope created while suppressed is
            still visible (it was never disposed).
        """
        if self.released:
            return
        leaked = self._slot.peek()
        if leaked is not None:
            raise AmbientStackCorrupted(
                "A scope created while the ambient scope was suppressed was not disposed "
                "before the suppression was released.",
                details={"leaked": leaked.id},
            )
        self._slot._store.set(self._saved)
        self.released = True
        if self._saved is not None:
            log.debug("Ambient scope %s restored", self._saved.id)

    def __enter__(self) -> SuppressionToken:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.release()


# Process-wide slot used when no slot is injected
default_slot = AmbientSlot()


def current_scope(slot: AmbientSlot | None = None) -> ResourceScope | None:
    """Return the ambient scope visible to the calling flow."""
    return (slot or default_slot).peek()


__all__ = [
    "AmbientStore",
    "ContextVarStore",
    "LocalStore",
    "AmbientSlot",
    "SuppressionToken",
    "default_slot",
    "current_scope",
]
