"""BM25 text search over the sparse vectors of indexed chunks."""

from __future__ import annotations

from collections.abc import Sequence

from qdrant_client import models as q

from rag_memory.adapters import qdrant_mapper
from rag_memory.core.constants import SPARSE_VEC
from rag_memory.core.logging import get_logger
from rag_memory.core.models import NumberedFilter
from rag_memory.repositories.vector_repository import namespace_filter
from rag_memory.services.qdrant_service import QdrantService
from rag_memory.services.sparse_encoder import SparseEncoder

logger = get_logger(__name__)


class TextRepository:
    """OR'd term search ranked by BM25 over the whole namespace."""

    def __init__(self, qdrant_service: QdrantService, encoder: SparseEncoder):
        self._qdrant = qdrant_service
        self._encoder = encoder

    async def search(
        self,
        dimension: int,
        namespace_id: str,
        query: str,
        *,
        limit: int,
        filters: Sequence[NumberedFilter] = (),
    ) -> list[str]:
        """Chunk ids sharing at least one term with ``query``, most relevant first."""
        if limit < 1 or not query.strip():
            return []
        if not await self._qdrant.collection_exists(dimension):
            return []

        sparse = await self._encoder.encode_query(query)
        if not sparse.indices:
            logger.debug("Text query %r has no searchable terms", query)
            return []

        points = await self._qdrant.query_points(
            dimension,
            q.SparseVector(indices=sparse.indices, values=sparse.values),
            using=SPARSE_VEC,
            limit=limit,
            filter_=namespace_filter(namespace_id, filters),
        )
        # Sparse search may return points with no overlapping term
        hits = [
            qdrant_mapper.scored_point_to_hit(point) for point in points if point.score > 0
        ]
        logger.debug("Text query %r matched %d chunks", query, len(hits))
        return [hit.chunk_id for hit in hits]
