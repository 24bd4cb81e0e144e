"""Declarative base and mixins for models persisted through scopes."""

from .base import Base, PKMixin, ReprMixin, TimestampMixin, metadata

__all__ = ["Base", "PKMixin", "ReprMixin", "TimestampMixin", "metadata"]
