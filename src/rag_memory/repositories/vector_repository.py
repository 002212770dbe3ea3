"""Repository for chunk vectors stored in the per-dimension Qdrant tables."""

from __future__ import annotations

from collections.abc import Sequence

from qdrant_client import models as q

from rag_memory.adapters import qdrant_mapper
from rag_memory.core.constants import K_NAMESPACE_ID
from rag_memory.core.logging import get_logger
from rag_memory.core.models import NumberedFilter, VectorEntry, VectorHit
from rag_memory.services.filters import any_filter_matches
from rag_memory.services.qdrant_service import QdrantService

logger = get_logger(__name__)


def namespace_filter(namespace_id: str, filters: Sequence[NumberedFilter] = ()) -> q.Filter:
    """Restrict to one namespace and, when given, to any of ``filters``."""
    return q.Filter(
        must=[q.FieldCondition(key=K_NAMESPACE_ID, match=q.MatchValue(value=namespace_id))],
        should=any_filter_matches(filters) or None,
    )


class VectorRepository:
    """Nearest-neighbour index over chunk embeddings."""

    def __init__(self, qdrant_service: QdrantService):
        self._qdrant = qdrant_service

    async def insert(self, dimension: int, entry: VectorEntry) -> str:
        """Persist a chunk's vector entry; returns its vector id."""
        await self._qdrant.upsert_points(dimension, [qdrant_mapper.entry_to_point(entry)])
        return entry.id

    async def nearest_neighbors(
        self,
        dimension: int,
        namespace_id: str,
        vector: Sequence[float],
        *,
        limit: int,
        filters: Sequence[NumberedFilter] = (),
    ) -> list[VectorHit]:
        """Top ``limit`` entries by cosine similarity; matches any of ``filters``."""
        if limit < 1:
            return []
        if not await self._qdrant.collection_exists(dimension):
            logger.debug("No vector table for dimension %d yet", dimension)
            return []
        points = await self._qdrant.query_points(
            dimension,
            vector,
            limit=limit,
            filter_=namespace_filter(namespace_id, filters),
        )
        return [qdrant_mapper.scored_point_to_hit(point) for point in points]

    async def get_entries(self, dimension: int, vector_ids: Sequence[str]) -> list[VectorEntry]:
        """Fetch entries by vector id, preserving the requested order."""
        if not vector_ids or not await self._qdrant.collection_exists(dimension):
            return []
        records = await self._qdrant.retrieve_by_ids(dimension, vector_ids, with_vectors=True)
        by_id = {str(record.id): record for record in records}
        return [qdrant_mapper.record_to_entry(by_id[i]) for i in vector_ids if i in by_id]

    async def delete(self, dimension: int, vector_ids: Sequence[str]) -> None:
        if not vector_ids or not await self._qdrant.collection_exists(dimension):
            return
        await self._qdrant.delete(dimension, vector_ids)
        logger.debug("Deleted %d vector entries from dimension %d", len(vector_ids), dimension)
