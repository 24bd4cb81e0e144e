"""Ambient unit-of-work scopes and their SQLAlchemy implementation.

This package re-exports the scope machinery used by service layers alongside
the abstract contracts a resource backend must satisfy.
"""

from .ambient import AmbientSlot, ContextVarStore, LocalStore, SuppressionToken, current_scope, default_slot
from .base import ResourceFactory, ResourceHandle, ScopeOption
from .collection import ResourceCollection
from .factory import ResourceLocator, ScopeFactory
from .refresh import RefreshBridge, refresh_in_ancestors
from .scope import ResourceScope, ScopeState
from .sqlalchemy_uow import SessionHandle, SessionResourceFactory

__all__ = [
    "AmbientSlot",
    "ContextVarStore",
    "LocalStore",
    "SuppressionToken",
    "current_scope",
    "default_slot",
    "ResourceFactory",
    "ResourceHandle",
    "ScopeOption",
    "ResourceCollection",
    "ResourceLocator",
    "ScopeFactory",
    "RefreshBridge",
    "refresh_in_ancestors",
    "ResourceScope",
    "ScopeState",
    "SessionHandle",
    "SessionResourceFactory",
]
