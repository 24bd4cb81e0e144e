"""
Propagate an isolated scope's committed changes into its ancestors.

When a force-created scope commits, ancestors that already loaded the same
entities keep their stale copies until they reload them. Rather than making
ancestors discard their whole working set, the bridge asks each ancestor's
cached handle to reload just the committed identities.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from scopekeeper.core.errors import ArgumentInvalid
from scopekeeper.uow.base import Identity

if TYPE_CHECKING:
    from scopekeeper.uow.collection import ResourceCollection
    from scopekeeper.uow.scope import ResourceScope

log = logging.getLogger(__name__)


def _ancestor_collections(scope: ResourceScope) -> list[ResourceCollection]:
    """Distinct live collections on ``scope``'s parent chain, nearest first."""
    seen = {id(scope.bound_collection)}
    found: list[ResourceCollection] = []
    ancestor = scope.parent
    while ancestor is not None:
        if not ancestor.disposed:
            collection = ancestor.collection
            if id(collection) not in seen:
                seen.add(id(collection))
                found.append(collection)
        ancestor = ancestor.parent
    return found


def refresh_in_ancestors(
    scope: ResourceScope,
    committed_identities: Mapping[str, Iterable[Identity]],
) -> int:
    """Reload ``committed_identities`` in every ancestor collection of ``scope``.

    :param scope: Scope (active or disposed) whose ancestors should observe the changes.
    :param committed_identities: Resource key -> identities committed under it.
        Only ancestor handles cached under the same key are considered.
    :returns: Number of (handle, identity) pairs actually reloaded.
    """
    if scope is None:
        raise ArgumentInvalid("A scope is required to refresh its ancestors.")
    pending = {key: list(ids) for key, ids in committed_identities.items() if ids}
    if not pending:
        return 0

    reloaded = 0
    for collection in _ancestor_collections(scope):
        for key, identities in pending.items():
            handle = collection.get_cached(key)
            if handle is None:
                continue
            for identity in identities:
                if handle.reload(identity):
                    reloaded += 1
    log.debug("Scope %s refreshed %d cached entities in ancestor scopes", scope.id, reloaded)
    return reloaded


class RefreshBridge:
    """Bind :func:`refresh_in_ancestors` to the scope that performed the commit.

    The bridge keeps working after the bound scope is disposed, as long as its
    ancestors are still active.
    """

    def __init__(self, scope: ResourceScope) -> None:
        if scope is None:
            raise ArgumentInvalid("A scope is required to build a refresh bridge.")
        self.scope = scope

    def refresh_in_ancestor(self, committed_identities: Mapping[str, Iterable[Identity]]) -> int:
        return refresh_in_ancestors(self.scope, committed_identities)

    def refresh_committed(self) -> int:
        """Refresh whatever the bound scope's last commit persisted."""
        return refresh_in_ancestors(self.scope, self.scope.committed_identities)
