"""Lazy, per-document schema migrations for MongoDB."""

from mongo_lazy_schema.exceptions import (
    InvalidProjectionError,
    InvalidRevisionError,
    LazySchemaError,
    RevisionOutputError,
    VersionMismatchError,
)
from mongo_lazy_schema.revisions import Batched, PerDocument
from mongo_lazy_schema.schema import LazySchema, SchemaConfig, create_embedded_schema, create_schema

__version__ = "0.1.0"

__all__ = [
    "Batched",
    "InvalidProjectionError",
    "InvalidRevisionError",
    "LazySchema",
    "LazySchemaError",
    "PerDocument",
    "RevisionOutputError",
    "SchemaConfig",
    "VersionMismatchError",
    "create_embedded_schema",
    "create_schema",
    "__version__",
]
