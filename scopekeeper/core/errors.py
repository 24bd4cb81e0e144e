"""
Exception taxonomy raised by the scope manager.

These exceptions are **backend-agnostic**: SQLAlchemy (or any other backend)
errors raised while creating, committing or disposing resource handles are
never wrapped and reach the caller unchanged.
"""

from __future__ import annotations

from typing import Any


class ScopeError(Exception):
    """
    Base class for all scope-manager errors.

    Parameters
    ----------
    message : str
        Human-readable description of the failure.
    code : str, optional
        Stable machine-readable identifier. Defaults to ``"scope_error"``.
    details : dict[str, Any] | None, optional
        Optional structured context (scope ids, keys, ...).

    Attributes
    ----------
    message : str
        Error summary.
    code : str
        Stable machine-readable identifier.
    details : dict[str, Any]
        Arbitrary context specific to the error instance.
    """

    default_code = "scope_error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class InvalidOperation(ScopeError):
    """Raised when the API is used in a state that does not allow the call."""

    default_code = "invalid_operation"


class ObjectDisposed(InvalidOperation):
    """Raised when a disposed scope is used again."""

    default_code = "object_disposed"

    def __init__(self, message: str = "The scope has already been disposed.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ArgumentInvalid(ScopeError, ValueError):
    """Raised when a required constructor argument is missing or malformed."""

    default_code = "argument_invalid"


class AmbientStackCorrupted(ScopeError, RuntimeError):
    """
    Raised when the ambient push/pop discipline is broken.

    Notes
    -----
    This is a defect in the calling code (a scope disposed out of order, or a
    scope leaked out of a suppressed block), never a recoverable condition.
    """

    default_code = "ambient_stack_corrupted"


__all__ = [
    "ScopeError",
    "InvalidOperation",
    "ObjectDisposed",
    "ArgumentInvalid",
    "AmbientStackCorrupted",
]
