"""Factory Boy helpers wired to the ambient scope's SQLAlchemy session."""

from __future__ import annotations

import factory

from scopekeeper.uow import ResourceLocator


def ambient_session():
    """Return the session of the ambient scope.

    Raises
    ------
    scopekeeper.core.errors.InvalidOperation
        If a factory creates objects outside of any scope.
    """
    return ResourceLocator().session()


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Base class configuring Factory Boy for the ambient scope.

    Objects are only added to the session; they become durable when the
    owning scope commits, like anything else staged in it.
    """

    class Meta:
        abstract = True
        sqlalchemy_session_factory = ambient_session
        sqlalchemy_session_persistence = None
