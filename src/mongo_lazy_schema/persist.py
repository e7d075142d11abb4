from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pymongo import ReplaceOne, UpdateOne
from pymongo.results import BulkWriteResult

from mongo_lazy_schema.bucketing import DocumentMetaData

logger = logging.getLogger(__name__)

WriteOperation = Union[ReplaceOne, UpdateOne]


def _field_update(
    document: Mapping[str, Any],
    initial_fields: Sequence[str],
    embedded_names: Sequence[str],
) -> Dict[str, Any]:
    update: Dict[str, Any] = {}
    fields = {k: v for k, v in document.items() if k != "_id"}
    if fields:
        update["$set"] = fields
    removed = {
        name: ""
        for name in initial_fields
        if name not in document and name not in embedded_names
    }
    if removed:
        update["$unset"] = removed
    return update


def build_write_operations(
    documents: Sequence[Any],
    metadata: Sequence[DocumentMetaData],
    embedded_names: Sequence[str] = (),
) -> List[WriteOperation]:
    """Build one write per document flagged for update.

    Without embedded fields every stale document is replaced whole. With
    embedded fields the fetched fields are ``$set`` and fields the revisions
    dropped are ``$unset``, so embedded fields left out by a projection
    survive in the store.
    """
    operations: List[WriteOperation] = []
    for document, meta in zip(documents, metadata):
        if not meta.will_be_updated:
            continue

        if embedded_names:
            operations.append(
                UpdateOne(
                    {"_id": document["_id"]},
                    _field_update(document, meta.initial_fields or [], embedded_names),
                )
            )
        else:
            operations.append(ReplaceOne({"_id": document["_id"]}, document))

    return operations


async def persist_changed_documents(
    collection,
    documents: Sequence[Any],
    metadata: Sequence[DocumentMetaData],
    embedded_names: Sequence[str] = (),
    ordered: bool = True,
) -> Optional[BulkWriteResult]:
    operations = build_write_operations(documents, metadata, embedded_names)
    if not operations:
        logger.debug("No changed documents to persist")
        return None

    logger.debug("Persisting %d changed documents", len(operations))
    return await collection.bulk_write(operations, ordered=ordered)
