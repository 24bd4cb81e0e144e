"""Generic repository base resolving its session from the ambient scope.

This module centralizes persistence-only concerns shared by all repositories:
- Session resolution through the ambient scope (no session threading).
- Safe sorting with a whitelist mapping (prevents SQL injection).
- Safe update helpers with per-repository updatable-field whitelists.
- No business logic, no commit/rollback: scopes own transactions.

Design decisions
----------------
* Repositories MUST remain thin and persistence-focused:
  - They never implement use cases or domain policies.
  - They never call commit/rollback; the owning scope commits.
* ``add``/``delete`` only stage changes. Nothing reaches the database before
  the owning scope commits, so a failure anywhere in a joined chain leaves no
  partial writes behind.
* Sorting is opt-in per aggregate via ``_sortable_fields`` mapping.
* Updates MUST NOT allow mass-assignment: each repo exposes an explicit
  ``_updatable_fields`` whitelist.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import Select, and_, func, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from scopekeeper.core.errors import ArgumentInvalid, InvalidOperation
from scopekeeper.uow.factory import ResourceLocator

E = TypeVar("E")  # SQLAlchemy mapped entity type


# ----------------------------- Sorting utilities -----------------------------


def parse_sort_tokens(raw: Iterable[str]) -> list[tuple[str, bool]]:
    """Parse public sort tokens into ``(field, is_desc)`` tuples.

    :param raw: Public tokens like ``["-created_at", "name"]``.
    :type raw: Iterable[str]
    :returns: List of ``(field_name, is_desc)`` tokens.
    :rtype: list[tuple[str, bool]]
    """
    parsed: list[tuple[str, bool]] = []
    for token in raw:
        is_desc = token.startswith("-")
        field = token[1:] if is_desc else token
        field = field.strip()
        if field:
            parsed.append((field, is_desc))
    return parsed


def _apply_sorting(
    stmt: Select[Any],
    sortable_fields: Mapping[str, InstrumentedAttribute[Any]],
    tokens: Iterable[str],
    *,
    pk_attr: InstrumentedAttribute[Any] | None,
) -> Select[Any]:
    """Apply safe ``ORDER BY`` clauses based on a whitelist mapping.

    Unknown sort tokens are ignored silently. The model's primary key is always
    appended as a final ascending tiebreaker.
    """
    orders: list[Any] = []
    for field, is_desc in parse_sort_tokens(tokens):
        col = sortable_fields.get(field)
        if isinstance(col, InstrumentedAttribute):
            orders.append(col.desc() if is_desc else col.asc())

    if orders:
        stmt = stmt.order_by(*orders)

    if pk_attr is not None:
        stmt = stmt.order_by(pk_attr.asc())

    return stmt


# ------------------------------ Base repository ------------------------------


class BaseRepository(Generic[E]):
    """Generic, persistence-only repository for a single aggregate.

    Subclasses MUST define:

    * ``model``: the SQLAlchemy mapped class.

    Subclasses MAY override:

    * ``resource_key`` to target a database other than the default one.
    * ``_sortable_fields`` to expose safe sort keys.
    * ``_updatable_fields`` to whitelist keys allowed for updates.

    This class NEVER opens, commits or rolls back transactions.
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    #: Resource key of the database holding ``model`` (``None`` = scope default)
    resource_key: str | None = None

    def __init__(
        self,
        session: Session | None = None,
        *,
        locator: ResourceLocator | None = None,
    ) -> None:
        """Initialise the repository.

        When no explicit session is provided the repository resolves the
        session of the ambient scope on every access, so one repository
        instance can serve many scopes.

        :param session: Explicit session, bypassing the ambient scope.
        :type session: :class:`sqlalchemy.orm.Session` | None
        :param locator: Locator used to reach the ambient scope.
        :type locator: ResourceLocator | None
        """
        self._session: Session | None = session
        self._locator = locator or ResourceLocator()

    # ------------------------------ Session access ---------------------------

    @property
    def session(self) -> Session:
        """Return the active SQLAlchemy session.

        :raises scopekeeper.core.errors.InvalidOperation: When no session was
            injected and no scope is active in the calling flow.
        """
        if self._session is not None:
            return self._session
        return cast(Session, self._locator.session(self.resource_key))

    # ------------------------------ Extensibility ----------------------------

    def _pk_attr(self) -> InstrumentedAttribute[Any] | None:
        """Return the model's primary-key attribute (``model.id``) if available."""
        return getattr(self.model, "id", None)

    def _sortable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        """Whitelist mapping of public sort keys to model attributes."""
        return {}

    def _updatable_fields(self) -> set[str]:
        """Whitelist of public keys that can be assigned on update.

        Subclasses **should** override this to prevent mass-assignment.
        """
        return set()

    # ------------------------------ Internals --------------------------------

    def _apply_equality_filters(
        self,
        stmt: Select[Any],
        filters: Mapping[str, Any] | None,
    ) -> Select[Any]:
        if not filters:
            return stmt
        clauses = [getattr(self.model, k) == v for k, v in filters.items()]
        return stmt.where(and_(*clauses)) if clauses else stmt

    def _sanitize_update_fields(
        self,
        fields: Mapping[str, Any],
        *,
        strict: bool = True,
    ) -> dict[str, Any]:
        """Return a dict with only whitelisted update keys.

        :raises ArgumentInvalid: If ``strict`` and unknown keys are present.
        """
        allowed = self._updatable_fields()
        if not allowed:
            # Fail-closed by default to avoid accidental mass-assignment
            if fields and strict:
                raise ArgumentInvalid("No updatable fields configured for this repository.")
            return {}

        unknown = [k for k in fields if k not in allowed]
        if unknown and strict:
            raise ArgumentInvalid(
                f"Unknown or non-updatable fields: {unknown}", details={"fields": unknown}
            )

        return {k: v for k, v in fields.items() if k in allowed}

    # --------------------------------- CRUD ----------------------------------

    def add(self, instance: E) -> E:
        """Stage a new entity; it is persisted when the owning scope commits."""
        self.session.add(instance)
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Retrieve a single entity by primary key (identity map first)."""
        return cast(E | None, self.session.get(self.model, entity_id))

    def get_many(self, entity_ids: Iterable[Any]) -> list[E]:
        """Retrieve the entities whose primary key is in ``entity_ids``."""
        ids = list(entity_ids)
        pk_attr = self._pk_attr()
        if pk_attr is None:
            raise InvalidOperation("BaseRepository.get_many requires a detectable PK attribute.")
        if not ids:
            return []
        stmt = _apply_sorting(select(self.model).where(pk_attr.in_(ids)), {}, [], pk_attr=pk_attr)
        return cast(list[E], list(self.session.execute(stmt).scalars().all()))

    def find_one(self, **filters: Any) -> E | None:
        """Find a single entity by simple equality filters."""
        stmt: Select[Any] = self._apply_equality_filters(select(self.model), filters)
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def exists(self, **filters: Any) -> bool:
        """Check existence for simple equality filters."""
        stmt: Select[Any] = select(func.count()).select_from(self.model)
        stmt = self._apply_equality_filters(stmt, filters)
        return bool(self.session.execute(stmt).scalar())

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        sort: Iterable[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[E]:
        """List entities with optional equality filtering and safe sorting."""
        stmt: Select[Any] = select(self.model)
        stmt = self._apply_equality_filters(stmt, filters)
        stmt = _apply_sorting(stmt, self._sortable_fields(), sort or [], pk_attr=self._pk_attr())

        if limit is not None:
            stmt = stmt.limit(int(limit))
        if offset is not None:
            stmt = stmt.offset(int(offset))

        return cast(list[E], list(self.session.execute(stmt).scalars().all()))

    def delete(self, instance: E) -> None:
        """Stage the deletion of an entity."""
        self.session.delete(instance)

    def flush(self) -> None:
        """Flush pending changes to the database without committing."""
        self.session.flush()

    # ----------------------------- Safe updates -------------------------------

    def assign_updates(
        self,
        instance: E,
        fields: Mapping[str, Any],
        *,
        strict: bool = True,
    ) -> E:
        """Assign only whitelisted keys to ``instance``.

        The assignment uses ``setattr`` so SQLAlchemy ``@validates`` hooks run.

        :raises ArgumentInvalid: If ``strict`` and unknown keys are present, or if no
                           updatable fields are configured.
        """
        updates = self._sanitize_update_fields(fields, strict=strict)
        for k, v in updates.items():
            setattr(instance, k, v)
        return instance
