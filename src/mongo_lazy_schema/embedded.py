"""Migration of versioned sub-documents embedded in a parent document.

Each embedded field has its own schema and version numbering. The values of a
field are collected across the whole input batch, migrated with one call to
that field's schema, and written back into the parents once every field is
done.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from mongo_lazy_schema.bucketing import Bucket, is_present
from mongo_lazy_schema.revisions import gather_or_cancel

logger = logging.getLogger(__name__)


async def migrate_embedded_documents(
    embedded_schemas: Mapping[str, Any],
    embedded_documents: Mapping[str, List[Any]],
) -> Dict[str, List[Any]]:
    """Run every field's schema concurrently over that field's values."""
    names = list(embedded_documents)
    if not names:
        return {}

    logger.debug("Migrating embedded fields %s", names)
    results = await gather_or_cancel(
        *[embedded_schemas[name](embedded_documents[name]) for name in names]
    )
    return dict(zip(names, results))


def splice_embedded_documents(
    bucket: Bucket,
    original: Mapping[str, List[Any]],
    updated: Mapping[str, List[Any]],
) -> None:
    """Replace embedded values in place on the present parents of ``bucket``.

    Parents that had no value for a field keep whatever their own revisions
    produced for it.
    """
    for document, metadata in zip(bucket.documents, bucket.metadata):
        if not metadata.present:
            continue
        for name, values in updated.items():
            if is_present(original[name][metadata.index]):
                document[name] = values[metadata.index]
