from __future__ import annotations

import importlib

from mongo_lazy_schema.exceptions import SchemaLoadError
from mongo_lazy_schema.schema import LazySchema


def load_schema_object(reference: str) -> LazySchema:
    """Resolve ``"package.module:attribute"`` to a schema instance."""
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise SchemaLoadError(f"Expected 'module:attribute', got {reference!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise SchemaLoadError(f"Cannot import {module_name!r}: {exc}") from exc

    target = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise SchemaLoadError(f"{module_name!r} has no attribute {attribute!r}") from exc

    if not isinstance(target, LazySchema):
        raise SchemaLoadError(f"{reference!r} is not a schema (got {type(target).__name__})")
    return target
