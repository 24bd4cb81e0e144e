"""Ambient resource scopes for SQLAlchemy-backed service layers.

Nested service calls share one unit of work without passing it around::

    factory = create_scope_factory()

    with factory.create() as scope:
        scope.session().add(obj)
        scope.commit()
"""

from scopekeeper.core.errors import (
    AmbientStackCorrupted,
    ArgumentInvalid,
    InvalidOperation,
    ObjectDisposed,
    ScopeError,
)
from scopekeeper.factory import create_scope_factory
from scopekeeper.uow import (
    AmbientSlot,
    RefreshBridge,
    ResourceCollection,
    ResourceLocator,
    ResourceScope,
    ScopeFactory,
    ScopeOption,
    SessionHandle,
    SessionResourceFactory,
    SuppressionToken,
    current_scope,
    default_slot,
)

__version__ = "0.1.0"

__all__ = [
    "AmbientStackCorrupted",
    "ArgumentInvalid",
    "InvalidOperation",
    "ObjectDisposed",
    "ScopeError",
    "create_scope_factory",
    "AmbientSlot",
    "RefreshBridge",
    "ResourceCollection",
    "ResourceLocator",
    "ResourceScope",
    "ScopeFactory",
    "ScopeOption",
    "SessionHandle",
    "SessionResourceFactory",
    "SuppressionToken",
    "current_scope",
    "default_slot",
]
