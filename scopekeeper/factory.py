"""Bootstrap a :class:`ScopeFactory` from configuration."""

from __future__ import annotations

from scopekeeper.core.config import DEFAULT_KEY, BaseConfig, get_config
from scopekeeper.core.database import build_resource_factory
from scopekeeper.core.logger import configure_logging
from scopekeeper.uow.ambient import AmbientSlot
from scopekeeper.uow.factory import ScopeFactory


def create_scope_factory(
    config: type[BaseConfig] | object | None = None,
    *,
    slot: AmbientSlot | None = None,
    setup_logging: bool = True,
) -> ScopeFactory:
    """Build and configure the scope factory used by service layers.

    :param config: Configuration class/object; inferred from ``APP_ENV`` when omitted.
    :param slot: Ambient storage to bind scopes to (the process-wide slot by default).
    :param setup_logging: Install the JSON root handler at ``LOG_LEVEL``.
    :returns: Factory whose scopes hand out SQLAlchemy session handles.
    """
    cfg = get_config() if config is None else config

    if setup_logging:
        configure_logging(getattr(cfg, "LOG_LEVEL", "INFO"))

    resource_factory = build_resource_factory(cfg)

    return ScopeFactory(
        resource_factory,
        slot=slot,
        default_key=getattr(cfg, "DEFAULT_RESOURCE_KEY", DEFAULT_KEY),
        default_isolation_level=getattr(cfg, "DEFAULT_ISOLATION_LEVEL", None),
    )
