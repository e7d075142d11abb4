from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from mongo_lazy_schema.bucketing import VERSION_FIELD, Bucket, is_present
from mongo_lazy_schema.exceptions import RevisionOutputError, VersionMismatchError
from mongo_lazy_schema.revisions import Batched, PerDocument, Revision, RevisionChain, gather_or_cancel, resolve

logger = logging.getLogger(__name__)


async def _update_one(revision: PerDocument, document: Any) -> Any:
    return await resolve(revision.update(document))


async def apply_revision(revision: Revision, documents: Sequence[Any], version: int) -> List[Any]:
    """Run one revision over a bucket and check every result is tagged ``version + 1``."""
    if isinstance(revision, Batched):
        logger.debug("Applying batch revision %d to %d documents", version, len(documents))
        result = list(await resolve(revision.update_many(list(documents))))
        if len(result) != len(documents):
            raise RevisionOutputError(
                f"Batch revision {version} returned {len(result)} documents for {len(documents)} inputs"
            )
    else:
        logger.debug("Applying revision %d to %d documents", version, len(documents))
        result = await gather_or_cancel(*[_update_one(revision, document) for document in documents])

    expected = version + 1
    for document in result:
        received = document.get(VERSION_FIELD) if is_present(document) else None
        if received != expected:
            raise VersionMismatchError(document, expected, received)

    return result


def merge_buckets(carried: Bucket, waiting: Bucket) -> Bucket:
    """Interleave two index-ordered buckets into one, keeping input order.

    ``carried`` holds documents just migrated into this version, ``waiting``
    the ones that entered at it. Ties go to ``carried``.
    """
    merged = Bucket()
    i = j = 0
    while i < len(carried) and j < len(waiting):
        if waiting.metadata[j].index < carried.metadata[i].index:
            merged.append(waiting.documents[j], waiting.metadata[j])
            j += 1
        else:
            merged.append(carried.documents[i], carried.metadata[i])
            i += 1

    merged.documents.extend(carried.documents[i:])
    merged.metadata.extend(carried.metadata[i:])
    merged.documents.extend(waiting.documents[j:])
    merged.metadata.extend(waiting.metadata[j:])
    return merged


async def migrate_buckets(buckets: Dict[int, Bucket], revisions: RevisionChain) -> Bucket:
    """Drive every bucket up to the current version and return them as one bucket.

    ``buckets`` is drained. Buckets keyed above the current version are never
    transformed; they are merged into the result at their original positions.
    """
    schema_version = revisions.schema_version
    if not buckets:
        return Bucket()

    for version in range(max(min(buckets), 0), schema_version):
        bucket = buckets.pop(version, None)
        if not bucket:
            continue
        documents = await apply_revision(revisions[version], bucket.documents, version)
        carried = Bucket(documents=documents, metadata=bucket.metadata)
        buckets[version + 1] = merge_buckets(carried, buckets.get(version + 1, Bucket()))

    result = buckets.pop(schema_version, Bucket())
    for version in sorted(buckets):
        result = merge_buckets(result, buckets.pop(version))
    return result
