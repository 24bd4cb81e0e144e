"""Pytest fixtures wiring scopes to throw-away SQLite databases.

Every test gets two file-backed SQLite databases (``default`` and
``reporting``) so durability can be checked from independent connections.
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine

from scopekeeper.models import Base
from tests.school import models as school_models  # noqa: F401  (registers tables)
from scopekeeper.uow import (
    ResourceLocator,
    ScopeFactory,
    SessionResourceFactory,
    default_slot,
)


def _sqlite_engine(path):
    return create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})


@pytest.fixture()
def engine(tmp_path):
    """Default database with the school schema."""
    eng = _sqlite_engine(tmp_path / "school.db")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def reporting_engine(tmp_path):
    """Secondary database bound to the ``reporting`` resource key."""
    eng = _sqlite_engine(tmp_path / "reporting.db")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def resource_factory(engine, reporting_engine):
    return SessionResourceFactory({"default": engine, "reporting": reporting_engine})


@pytest.fixture()
def scope_factory(resource_factory):
    """Scope factory bound to the process-wide ambient slot."""
    return ScopeFactory(resource_factory, default_isolation_level="SERIALIZABLE")


@pytest.fixture()
def locator():
    return ResourceLocator()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


@pytest.fixture(autouse=True)
def _ambient_slot_balanced():
    """Fail any test that leaves a scope visible in the process-wide slot."""
    assert default_slot.peek() is None, "a previous test leaked an ambient scope"
    yield
    leaked = default_slot.peek()
    if leaked is not None:
        default_slot._store.set(None)
    assert leaked is None, f"test leaked ambient scope {leaked!r}"
