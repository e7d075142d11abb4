from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

VERSION_FIELD = "_v"


@dataclass
class DocumentMetaData:
    """Where a document came from and whether it has to be written back."""

    index: int
    will_be_updated: bool
    present: bool = True
    initial_fields: Optional[List[str]] = None


@dataclass
class Bucket:
    """Documents waiting for the revision of one version, in input order."""

    documents: List[Any] = field(default_factory=list)
    metadata: List[DocumentMetaData] = field(default_factory=list)

    def append(self, document: Any, metadata: DocumentMetaData) -> None:
        self.documents.append(document)
        self.metadata.append(metadata)

    def __len__(self) -> int:
        return len(self.documents)


@dataclass
class BucketedInput:
    buckets: Dict[int, Bucket]
    embedded_documents: Dict[str, List[Any]]


def is_present(document: Any) -> bool:
    return bool(document)


def document_version(document: Mapping[str, Any]) -> int:
    """Version tag of a document; untagged documents predate versioning."""
    version = document.get(VERSION_FIELD)
    return 0 if version is None else version


def is_stale_version(version: int, current: int) -> bool:
    """Only versions a revision exists for are stale; others pass through."""
    return 0 <= version < current


def bucket_documents(
    documents: Sequence[Any],
    schema_version: int,
    embedded_versions: Mapping[str, int],
    projected_embedded: Sequence[str],
    track_fields: bool = False,
) -> BucketedInput:
    """Group ``documents`` by version and collect their embedded values.

    ``projected_embedded`` lists the embedded field names that were not
    excluded by the projection. ``track_fields`` snapshots the keys of every
    present document so removed fields can be unset later.
    """
    buckets: Dict[int, Bucket] = {}
    embedded_documents: Dict[str, List[Any]] = {name: [] for name in projected_embedded}

    for index, document in enumerate(documents):
        present = is_present(document)
        version = document_version(document) if present else schema_version
        will_be_updated = present and is_stale_version(version, schema_version)

        for name in projected_embedded:
            embedded = document.get(name) if present else None
            if (
                not will_be_updated
                and is_present(embedded)
                and is_stale_version(document_version(embedded), embedded_versions[name])
            ):
                will_be_updated = True
            embedded_documents[name].append(embedded)

        buckets.setdefault(version, Bucket()).append(
            document,
            DocumentMetaData(
                index=index,
                will_be_updated=will_be_updated,
                present=present,
                initial_fields=list(document.keys()) if track_fields and present else None,
            ),
        )

    logger.debug(
        "Bucketed %d documents into versions %s",
        len(documents),
        {version: len(bucket) for version, bucket in sorted(buckets.items())},
    )
    return BucketedInput(buckets=buckets, embedded_documents=embedded_documents)
