"""Schema objects: the entry point that brings documents up to date on read.

A schema is built once from its revisions (and, optionally, the schemas of its
embedded sub-documents) and then awaited with whatever a query returned::

    users = create_schema([add_full_name, split_address], embedded={"avatar": avatar_schema})

    user = await users(collection.find_one({"_id": user_id}), collection)
    page = await users(collection.find(query).to_list(50), collection)

Documents that needed migrating are written back to ``collection`` in one
``bulk_write``; everything else is returned untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from mongo_lazy_schema.bucketing import bucket_documents
from mongo_lazy_schema.driver import migrate_buckets
from mongo_lazy_schema.embedded import migrate_embedded_documents, splice_embedded_documents
from mongo_lazy_schema.exceptions import InvalidProjectionError
from mongo_lazy_schema.persist import persist_changed_documents
from mongo_lazy_schema.revisions import RevisionChain, gather_or_cancel, resolve

logger = logging.getLogger(__name__)

Projection = Mapping[str, Any]


def _is_exclusion(value: Any) -> bool:
    return value is False or (type(value) in (int, float) and value == 0)


def validate_projection(projection: Optional[Projection]) -> None:
    """Only exclusion projections (``{"field": False}`` or ``0``) are supported."""
    for key, value in (projection or {}).items():
        if not _is_exclusion(value):
            raise InvalidProjectionError(
                f"Only excluding projections are supported, got {key!r}: {value!r}"
            )


@dataclass(frozen=True)
class SchemaConfig:
    revisions: RevisionChain
    embedded_schemas: Mapping[str, "LazySchema"] = field(default_factory=dict)
    embedded: bool = False
    ordered_writes: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "embedded_schemas", MappingProxyType(dict(self.embedded_schemas)))

    @property
    def schema_version(self) -> int:
        return self.revisions.schema_version

    @property
    def has_embedded_documents(self) -> bool:
        return bool(self.embedded_schemas)

    @property
    def embedded_versions(self) -> Dict[str, int]:
        return {name: schema.schema_version for name, schema in self.embedded_schemas.items()}

    def projected_embedded_names(self, projection: Optional[Projection]) -> List[str]:
        projection = projection or {}
        return [
            name
            for name in self.embedded_schemas
            if not (name in projection and _is_exclusion(projection[name]))
        ]


class LazySchema:
    """Awaitable migrator for one kind of versioned document."""

    def __init__(self, config: SchemaConfig) -> None:
        self.config = config

    @property
    def schema_version(self) -> int:
        return self.config.schema_version

    @property
    def embedded(self) -> bool:
        return self.config.embedded

    def __repr__(self) -> str:
        kind = "embedded " if self.embedded else ""
        return f"<LazySchema {kind}v{self.schema_version} embedded_fields={list(self.config.embedded_schemas)}>"

    async def __call__(
        self,
        input: Any,
        collection=None,
        projection: Optional[Projection] = None,
        ordered: Optional[bool] = None,
    ) -> Any:
        """Migrate a document, a list of documents, or an awaitable of either.

        Falsy entries stand for missing documents and come back unchanged. When
        ``collection`` is given (and this is not an embedded schema) changed
        documents are persisted before returning. ``ordered`` overrides the
        schema's ``ordered_writes`` for that write.
        """
        input = await resolve(input)

        single = not isinstance(input, (list, tuple))
        documents = [input] if single else list(input)

        validate_projection(projection)

        if not documents:
            return []

        config = self.config
        projected = config.projected_embedded_names(projection)
        embedded_versions = config.embedded_versions

        bucketed = bucket_documents(
            documents,
            config.schema_version,
            embedded_versions,
            projected,
            track_fields=config.has_embedded_documents,
        )

        updated_embedded, final = await gather_or_cancel(
            migrate_embedded_documents(config.embedded_schemas, bucketed.embedded_documents),
            migrate_buckets(bucketed.buckets, config.revisions),
        )
        splice_embedded_documents(final, bucketed.embedded_documents, updated_embedded)

        if collection is not None and not config.embedded:
            await persist_changed_documents(
                collection,
                final.documents,
                final.metadata,
                list(config.embedded_schemas),
                ordered=config.ordered_writes if ordered is None else ordered,
            )

        if single:
            return final.documents[0]
        return final.documents


def _build(
    revisions: Iterable[Any],
    embedded: Optional[Mapping[str, LazySchema]],
    is_embedded: bool,
    ordered_writes: bool,
) -> LazySchema:
    embedded = dict(embedded or {})
    for name, schema in embedded.items():
        if not callable(schema) or not hasattr(schema, "schema_version"):
            raise TypeError(f"Embedded field {name!r} needs a schema, got {schema!r}")

    config = SchemaConfig(
        revisions=RevisionChain(revisions),
        embedded_schemas=embedded,
        embedded=is_embedded,
        ordered_writes=ordered_writes,
    )
    logger.debug(
        "Created %sschema at version %d with embedded fields %s",
        "embedded " if is_embedded else "",
        config.schema_version,
        list(embedded),
    )
    return LazySchema(config)


def create_schema(
    revisions: Iterable[Any],
    embedded: Optional[Mapping[str, LazySchema]] = None,
    ordered_writes: bool = True,
) -> LazySchema:
    """Create a schema for top-level documents stored in a collection."""
    return _build(revisions, embedded, is_embedded=False, ordered_writes=ordered_writes)


def create_embedded_schema(
    revisions: Iterable[Any],
    embedded: Optional[Mapping[str, LazySchema]] = None,
) -> LazySchema:
    """Create a schema for sub-documents; it never writes to a collection."""
    return _build(revisions, embedded, is_embedded=True, ordered_writes=True)
