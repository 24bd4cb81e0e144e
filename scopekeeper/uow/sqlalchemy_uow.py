"""
SQLAlchemy implementation of the resource contracts.

Each resource key maps to one database (an ``Engine`` or a ``sessionmaker``);
the handle for a key wraps one :class:`~sqlalchemy.orm.Session` for the
lifetime of the owning scope.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import suppress
from typing import Any

from sqlalchemy import event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoInspectionAvailable, SQLAlchemyError
from sqlalchemy.orm import ORMExecuteState, Session, sessionmaker

from scopekeeper.core.errors import ArgumentInvalid, InvalidOperation
from scopekeeper.uow.base import Identity, is_known_isolation_level

log = logging.getLogger(__name__)


class SessionHandle:
    """
    One SQLAlchemy session owned by a resource collection.

    Read-only handles:

    - Install portable write-guards (ORM flushes with pending changes and
      DML/DDL statements executed through the session are rejected).
    - Apply ``SET TRANSACTION READ ONLY`` on explicit transactions when the
      dialect supports it and ``enforce_db_readonly`` is enabled.
    - Never flush on commit.

    Parameters
    ----------
    session:
        Fresh session dedicated to this handle.
    key:
        Resource key the handle was created for (used in logs).
    read_only:
        Install write guards.
    enforce_db_readonly:
        If ``True`` (default), read-only explicit transactions also issue
        ``SET TRANSACTION READ ONLY`` on PostgreSQL and MySQL/MariaDB.
    """

    # Guard patterns for portable "no write" checks on textual SQL
    _WRITE_PREFIXES = (
        "insert",
        "update",
        "delete",
        "merge",
        "alter",
        "drop",
        "truncate",
        "create",
        "replace",
        "grant",
        "revoke",
    )

    def __init__(
        self,
        session: Session,
        *,
        key: str,
        read_only: bool = False,
        enforce_db_readonly: bool = True,
    ) -> None:
        self.session = session
        self.key = key
        self.read_only = read_only
        self.enforce_db_readonly = enforce_db_readonly
        self.isolation_level: str | None = None
        self._listeners_installed = False
        self.disposed = False
        # Identities flushed since the last commit or rollback
        self._flushed: set[Identity] = set()
        event.listen(self.session, "after_flush", self._record_flushed)
        if read_only:
            self._install_listeners()

    def __repr__(self) -> str:
        return f"<SessionHandle key={self.key} read_only={self.read_only}>"

    # ----------------------------- Transactions -------------------------------

    def begin_transaction(self, isolation_level: str) -> None:
        """Pin the session's connection to ``isolation_level``.

        Must run before the session touches the database, which holds for
        handles created by :class:`SessionResourceFactory`.
        """
        if not is_known_isolation_level(isolation_level):
            log.warning("Unknown isolation_level '%s'; attempting as-is.", isolation_level)
        conn = self.session.connection(execution_options={"isolation_level": isolation_level})
        self.isolation_level = isolation_level

        dialect = conn.dialect.name
        if self.read_only and self.enforce_db_readonly and dialect in ("postgresql", "mysql", "mariadb"):
            try:
                self.session.execute(text("SET TRANSACTION READ ONLY"))
            except SQLAlchemyError as exc:
                log.warning("SET TRANSACTION READ ONLY failed (%s). Falling back to guards-only.", exc)

    def commit(self) -> frozenset[Identity]:
        """Flush and commit; return the identity keys of everything persisted."""
        if self.read_only:
            # Nothing to persist; end the transaction cleanly.
            self.session.rollback()
            return frozenset()

        self.session.flush()
        identities = frozenset(self._flushed)
        self.session.commit()
        self._flushed.clear()
        return identities

    def rollback(self) -> None:
        self._flushed.clear()
        self.session.rollback()

    def _record_flushed(self, session: Session, flush_context: Any) -> None:
        for obj in (*session.new, *session.dirty, *session.deleted):
            state = inspect(obj)
            # New rows only get their identity key once the flush is finalized.
            key = state.key or state.mapper.identity_key_from_instance(obj)
            if key is not None and None not in key[1]:
                self._flushed.add(key)

    def dispose(self) -> None:
        """Close the session and detach guards. Second call is a no-op."""
        if self.disposed:
            return
        self.disposed = True
        self._flushed.clear()
        try:
            self.session.close()
        finally:
            with suppress(Exception):
                event.remove(self.session, "after_flush", self._record_flushed)
            self._remove_listeners()

    # ------------------------------- Refresh ----------------------------------

    def identity_of(self, entity: Any) -> Identity | None:
        """Return the identity key of ``entity`` if it is persistent and belongs here."""
        try:
            state = inspect(entity)
        except NoInspectionAvailable:
            return None
        key = getattr(state, "identity_key", None)
        if key is None:
            return None
        if state.session_id is not None and state.session_id != self.session.hash_key:
            return None
        return key

    def reload(self, identity: Identity) -> bool:
        """Refresh the cached instance for ``identity`` from the database.

        Instances with pending local modifications, or scheduled for deletion,
        are left untouched.

        :returns: ``True`` when an instance was reloaded.
        """
        obj = self.session.identity_map.get(identity)
        if obj is None:
            return False
        state = inspect(obj)
        if state.modified or state.deleted or obj in self.session.deleted:
            log.debug("Skipping refresh of locally modified entity %s", identity)
            return False
        self.session.refresh(obj)
        return True

    # ----------------------------- Guards & Listeners --------------------------

    def _install_listeners(self) -> None:
        """Install ORM-level listeners to prevent any write attempt."""
        if self._listeners_installed:
            return

        # 1) Block ORM flushes that would emit DML.
        def _before_flush(session, flush_context, instances):
            if session.new or session.dirty or session.deleted:
                raise InvalidOperation(
                    "Read-only scope: ORM flush blocked (new/dirty/deleted objects present).",
                    details={"resource_key": self.key},
                )

        # 2) Block DML/DDL executed through the session (covers text() and ORM bulk DML).
        def _do_orm_execute(orm_execute_state: ORMExecuteState):
            if orm_execute_state.is_insert or orm_execute_state.is_update or orm_execute_state.is_delete:
                raise InvalidOperation(
                    "Read-only scope: ORM DML statement blocked.",
                    details={"resource_key": self.key},
                )
            statement = str(orm_execute_state.statement)
            first_token = statement.lstrip().split(None, 1)[0].lower() if statement.strip() else ""
            if first_token.startswith(self._WRITE_PREFIXES):
                raise InvalidOperation(
                    f"Read-only scope: SQL statement blocked: {first_token.upper()}",
                    details={"resource_key": self.key},
                )

        event.listen(self.session, "before_flush", _before_flush)
        event.listen(self.session, "do_orm_execute", _do_orm_execute)

        # Keep refs for removal
        self._ro__before_flush = _before_flush
        self._ro__do_orm_execute = _do_orm_execute
        self._listeners_installed = True

    def _remove_listeners(self) -> None:
        """Detach previously installed listeners."""
        if not self._listeners_installed:
            return

        with suppress(Exception):
            event.remove(self.session, "before_flush", self._ro__before_flush)
        with suppress(Exception):
            event.remove(self.session, "do_orm_execute", self._ro__do_orm_execute)

        self._listeners_installed = False


class SessionResourceFactory:
    """
    Create :class:`SessionHandle` objects for registered resource keys.

    Parameters
    ----------
    binds:
        Resource key -> ``Engine`` or ``sessionmaker``. Keys are declared up
        front; requesting an unknown key is an error.
    session_options:
        Extra keyword arguments for ``sessionmaker`` when an ``Engine`` is
        given. ``autoflush`` defaults to ``False`` so pending objects only
        reach the database when the owning scope commits.
    enforce_db_readonly:
        Forwarded to read-only handles.
    """

    def __init__(
        self,
        binds: Mapping[str, Engine | sessionmaker],
        *,
        session_options: Mapping[str, Any] | None = None,
        enforce_db_readonly: bool = True,
    ) -> None:
        if not binds:
            raise ArgumentInvalid("At least one resource bind is required.")
        options = {"autoflush": False, **dict(session_options or {})}
        self._makers: dict[str, sessionmaker] = {}
        for key, bind in binds.items():
            if isinstance(bind, sessionmaker):
                self._makers[key] = bind
            elif isinstance(bind, Engine):
                self._makers[key] = sessionmaker(bind=bind, **options)
            else:
                raise ArgumentInvalid(
                    f"Bind for key {key!r} must be an Engine or a sessionmaker.",
                    details={"resource_key": key, "type": type(bind).__name__},
                )
        self.enforce_db_readonly = enforce_db_readonly

    @property
    def keys(self) -> list[str]:
        return list(self._makers)

    def create(self, key: str, *, read_only: bool = False) -> SessionHandle:
        maker = self._makers.get(key)
        if maker is None:
            raise ArgumentInvalid(
                f"No database registered for resource key {key!r}.",
                details={"resource_key": key, "known": self.keys},
            )
        return SessionHandle(
            maker(),
            key=key,
            read_only=read_only,
            enforce_db_readonly=self.enforce_db_readonly,
        )


__all__ = ["SessionHandle", "SessionResourceFactory"]
