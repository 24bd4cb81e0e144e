"""Scope manager settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

DEFAULT_KEY: Final[str] = "default"


# Load .env in development (no-op when the file is missing)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_binds(raw: str | None) -> dict[str, str]:
    """Parse ``name=url;name=url`` pairs into a mapping.

    Blank entries are skipped; entries without ``=`` raise ``ValueError`` so a
    typo never silently drops a database.

    :param raw: Raw environment value (may be ``None``).
    :type raw: str | None
    :returns: Resource key -> database URL mapping.
    :rtype: dict[str, str]
    """
    binds: dict[str, str] = {}
    if not raw:
        return binds
    for chunk in raw.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, url = chunk.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ValueError(f"Malformed bind entry {chunk!r}; expected 'name=url'.")
        binds[name.strip()] = url.strip()
    return binds


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    DATABASE_URL: str
        Connection string of the database bound to ``DEFAULT_RESOURCE_KEY``.
    DATABASE_URLS: dict[str, str]
        Extra databases keyed by resource key (``name=url;name=url``).
    DEFAULT_RESOURCE_KEY: str
        Key used when a handle is requested without an explicit key.
    SQLALCHEMY_ECHO: bool
        When ``True`` SQLAlchemy logs SQL statements for debugging.
    SESSION_AUTOFLUSH: bool
        Autoflush for sessions created by the resource factory. Disabled so
        pending objects only reach the database on commit.
    SESSION_EXPIRE_ON_COMMIT: bool
        Forwarded to ``sessionmaker``.
    ENFORCE_DB_READONLY: bool
        Apply ``SET TRANSACTION READ ONLY`` on read-only explicit transactions
        where the dialect supports it.
    DEFAULT_ISOLATION_LEVEL: str | None
        Isolation level used by ``create_with_transaction`` when none is given.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    # DB
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    DATABASE_URLS: dict[str, str] = parse_binds(os.getenv("DATABASE_URLS"))
    DEFAULT_RESOURCE_KEY = os.getenv("DEFAULT_RESOURCE_KEY", DEFAULT_KEY)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Sessions
    SESSION_AUTOFLUSH = env_bool("SESSION_AUTOFLUSH", False)
    SESSION_EXPIRE_ON_COMMIT = env_bool("SESSION_EXPIRE_ON_COMMIT", True)
    ENFORCE_DB_READONLY = env_bool("ENFORCE_DB_READONLY", True)
    DEFAULT_ISOLATION_LEVEL: str | None = os.getenv("DEFAULT_ISOLATION_LEVEL", "READ COMMITTED")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Honors ``SQLALCHEMY_ECHO`` for verbose SQL logging and defaults to
    ``DEBUG`` log output so scope lifecycles are visible.
    """

    DEBUG = env_bool("SCOPEKEEPER_DEBUG", True)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Uses a SQLite database unless ``TEST_DATABASE_URL`` is set.
    - SQLite only understands ``SERIALIZABLE`` / ``READ UNCOMMITTED``.
    """

    TESTING = True
    DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    DATABASE_URLS: dict[str, str] = {}
    DEFAULT_ISOLATION_LEVEL = "SERIALIZABLE"
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Keeps SQL echoing disabled.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Configuration class consumed by :func:`scopekeeper.factory.create_scope_factory`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
