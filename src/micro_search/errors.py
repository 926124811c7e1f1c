"""Exception hierarchy for micro-search.

Every error raised by the engine derives from ``MicroSearchError`` so callers
can catch the whole family at once. The concrete classes also inherit from the
closest builtin so existing ``except ValueError`` style handlers keep working.
"""

from __future__ import annotations


class MicroSearchError(Exception):
    """Base class for all micro-search errors."""


class NotFoundError(MicroSearchError, LookupError):
    """Raised when a snapshot blob does not exist."""


class IndexingError(MicroSearchError, ValueError):
    """Raised when a document batch cannot be indexed (missing id, reserved fields)."""


class DeserializationError(MicroSearchError):
    """Raised when snapshot bytes are corrupt or use an unsupported format."""


class StorageError(MicroSearchError):
    """Raised when the underlying blob store fails to read, write, or delete."""


class QueryError(MicroSearchError, ValueError):
    """Raised when a query request or query token is malformed."""
