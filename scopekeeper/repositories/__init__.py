"""Repository base classes bound to the ambient scope."""

from .base import BaseRepository, parse_sort_tokens

__all__ = ["BaseRepository", "parse_sort_tokens"]
