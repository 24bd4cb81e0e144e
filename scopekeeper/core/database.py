"""Build the SQLAlchemy engines and resource factory described by a config class.

Databases are enumerated explicitly in configuration (``DATABASE_URL`` plus
``DATABASE_URLS``); nothing is discovered at runtime.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from scopekeeper.core.config import DEFAULT_KEY, BaseConfig
from scopekeeper.uow.sqlalchemy_uow import SessionResourceFactory

log = logging.getLogger(__name__)


def _engine_for(url: str, *, echo: bool) -> Engine:
    """Create an engine; SQLite connections may be used from worker threads."""
    connect_args = {}
    if make_url(url).get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, connect_args=connect_args)


def build_engines(config: type[BaseConfig] | object) -> dict[str, Engine]:
    """Create one engine per configured resource key.

    :param config: Configuration class (or object) exposing the ``DATABASE_*`` keys.
    :returns: Resource key -> ``Engine`` mapping; the default key always exists.
    """
    default_key = getattr(config, "DEFAULT_RESOURCE_KEY", DEFAULT_KEY)
    echo = bool(getattr(config, "SQLALCHEMY_ECHO", False))
    urls: dict[str, str] = {default_key: config.DATABASE_URL}
    urls.update(getattr(config, "DATABASE_URLS", None) or {})

    engines = {key: _engine_for(url, echo=echo) for key, url in urls.items()}
    for key, engine in engines.items():
        log.info("Registered database for resource key=%s (%s)", key, engine.url.render_as_string())
    return engines


def build_resource_factory(
    config: type[BaseConfig] | object,
    engines: Mapping[str, Engine] | None = None,
) -> SessionResourceFactory:
    """Wrap the configured engines in a :class:`SessionResourceFactory`."""
    binds = dict(engines) if engines is not None else build_engines(config)
    return SessionResourceFactory(
        binds,
        session_options={
            "autoflush": bool(getattr(config, "SESSION_AUTOFLUSH", False)),
            "expire_on_commit": bool(getattr(config, "SESSION_EXPIRE_ON_COMMIT", True)),
        },
        enforce_db_readonly=bool(getattr(config, "ENFORCE_DB_READONLY", True)),
    )


def dispose_engines(engines: Mapping[str, Engine]) -> None:
    """Close every pooled connection of ``engines``."""
    for engine in engines.values():
        engine.dispose()
