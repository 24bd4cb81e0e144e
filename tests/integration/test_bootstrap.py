"""Building a scope factory from configuration."""

from __future__ import annotations

import logging

import pytest
from sqlalchemy import create_engine

from scopekeeper import create_scope_factory
from scopekeeper.core import config as settings
from scopekeeper.core.database import build_engines, dispose_engines
from scopekeeper.models import Base
from scopekeeper.uow import SessionResourceFactory
from tests.helpers.utils import audit_count, durable_emails
from tests.school.services import StudentCreationService, StudentCreationSpec


@pytest.fixture()
def config(tmp_path):
    class Config(settings.TestingConfig):
        DATABASE_URL = f"sqlite:///{tmp_path / 'main.db'}"
        DATABASE_URLS = {"reporting": f"sqlite:///{tmp_path / 'reports.db'}"}

    engines = [create_engine(Config.DATABASE_URL), create_engine(Config.DATABASE_URLS["reporting"])]
    for eng in engines:
        Base.metadata.create_all(eng)
    yield Config
    for eng in engines:
        eng.dispose()


def test_build_engines_registers_every_key(config):
    engines = build_engines(config)
    try:
        assert set(engines) == {"default", "reporting"}
    finally:
        dispose_engines(engines)


def test_create_scope_factory_end_to_end(config):
    scopes = create_scope_factory(config, setup_logging=False)
    assert isinstance(scopes.resource_factory, SessionResourceFactory)
    assert scopes.resource_factory.keys == ["default", "reporting"]
    assert scopes.default_isolation_level == "SERIALIZABLE"

    StudentCreationService(scopes).create_student(StudentCreationSpec("Mary", "mary@example.com"))

    main = create_engine(config.DATABASE_URL)
    reports = create_engine(config.DATABASE_URLS["reporting"])
    try:
        assert durable_emails(main) == {"mary@example.com"}
        assert audit_count(reports) == 1
    finally:
        main.dispose()
        reports.dispose()


def test_create_scope_factory_configures_logging(config):
    create_scope_factory(config)
    assert logging.getLogger().level == logging.WARNING
