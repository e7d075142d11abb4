"""Custom exceptions for mongo-lazy-schema."""

from __future__ import annotations

from typing import Any

from bson import json_util


class LazySchemaError(Exception):
    """Base exception for mongo-lazy-schema."""

    pass


class ConfigurationError(LazySchemaError):
    """Raised when configuration is missing or invalid."""

    pass


class InvalidRevisionError(LazySchemaError):
    """Raised when a revision is neither a per-document nor a batch transform."""

    pass


class InvalidProjectionError(LazySchemaError):
    """Raised when a projection contains anything other than exclusions."""

    pass


class RevisionOutputError(LazySchemaError):
    """Raised when a transform returns output that cannot be lined up with its input."""

    pass


class VersionMismatchError(RevisionOutputError):
    """Raised when a transform returns a document with the wrong version tag."""

    def __init__(self, document: Any, expected: int, received: Any) -> None:
        self.document = document
        self.expected = expected
        self.received = received
        super().__init__(
            f"Version mismatch on {_render(document)}. "
            f"Expected version {expected}, received {received}"
        )


class SchemaLoadError(LazySchemaError):
    """Raised when a schema reference cannot be imported."""

    pass


def _render(document: Any) -> str:
    try:
        return json_util.dumps(document)
    except (TypeError, ValueError):
        return repr(document)
