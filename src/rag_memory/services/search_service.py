"""Vector and hybrid search with context expansion."""

from __future__ import annotations

import asyncio
from typing import assert_never

from rag_memory.config import Settings
from rag_memory.core.constants import DEFAULT_VECTOR_SCORE_THRESHOLD, STATUS_READY
from rag_memory.core.logging import get_logger
from rag_memory.core.models import (
    Document,
    Namespace,
    NumberedFilter,
    PendingChunkState,
    ReadyChunkState,
    VectorHit,
)
from rag_memory.repositories.record_store import RecordStore
from rag_memory.repositories.text_repository import TextRepository
from rag_memory.repositories.vector_repository import VectorRepository
from rag_memory.schemas.search import ContentItem, Entry, SearchRequest, SearchResponse, SearchResult
from rag_memory.services.chunk_service import ChunkService
from rag_memory.services.filters import numbered_filters_from_named
from rag_memory.services.hybrid_rank import hybrid_rank, position_scores
from rag_memory.services.namespace_service import NamespaceService

logger = get_logger(__name__)


class SearchService:
    """Resolves a namespace, queries the indexes and merges the results."""

    def __init__(
        self,
        settings: Settings,
        store: RecordStore,
        namespaces: NamespaceService,
        chunks: ChunkService,
        vectors: VectorRepository,
        texts: TextRepository,
    ):
        self.settings = settings
        self._store = store
        self._namespaces = namespaces
        self._chunks = chunks
        self._vectors = vectors
        self._texts = texts

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Run a vector-only or hybrid search.

        Missing or incompatible namespaces and filters that resolve to nothing
        give an empty response, never an error.
        """
        if request.limit == 0:
            return SearchResponse()

        dimension = request.query_dimension
        namespace = await self._namespaces.get_compatible_namespace(
            request.namespace, model_id=request.model_id, dimension=dimension
        )
        if namespace is None:
            logger.debug(
                "No ready namespace %r for model=%s dimension=%d",
                request.namespace,
                request.model_id,
                dimension,
            )
            return SearchResponse()

        filters = numbered_filters_from_named(
            [f.to_named() for f in request.filters],
            namespace.filter_names,
            strict=self.settings.strict_filters,
        )
        if request.filters and not filters:
            logger.warning("No filter of the request is known to namespace %r", request.namespace)
            return SearchResponse()

        if request.text_query:
            ranked, scores = await self._hybrid(namespace, request, filters)
        else:
            ranked, scores = await self._vector_only(namespace, request, filters)

        ranges = await self._chunks.build_ranges(
            ranked,
            before=request.chunk_context.before,
            after=request.chunk_context.after,
        )

        results: list[SearchResult] = []
        documents: dict[str, Document] = {}
        for chunk_range, score in zip(ranges, scores):
            if chunk_range is None:
                continue
            document = documents.get(chunk_range.document_id) or await self._store.get_document(
                chunk_range.document_id
            )
            if document is None:
                continue
            documents[document.id] = document
            results.append(
                SearchResult(
                    document_id=chunk_range.document_id,
                    order=chunk_range.order,
                    start_order=chunk_range.start_order,
                    content=[
                        ContentItem(text=content.text, metadata=content.metadata)
                        for content in chunk_range.content
                    ],
                    score=score,
                )
            )

        return SearchResponse(
            results=results,
            entries=[Entry.from_document(document) for document in documents.values()],
        )

    async def _vector_only(
        self,
        namespace: Namespace,
        request: SearchRequest,
        filters: list[NumberedFilter],
    ) -> tuple[list[str], list[float]]:
        assert request.embedding is not None
        hits = await self._vector_hits(namespace, request, filters)
        ranked: list[str] = []
        scores: list[float] = []
        for hit in hits:
            if await self._is_visible(namespace, hit.chunk_id, vector_id=hit.vector_id):
                ranked.append(hit.chunk_id)
                scores.append(hit.score)
        return ranked, scores

    async def _hybrid(
        self,
        namespace: Namespace,
        request: SearchRequest,
        filters: list[NumberedFilter],
    ) -> tuple[list[str], list[float]]:
        assert request.text_query is not None
        hits, text_ids = await asyncio.gather(
            self._vector_hits(namespace, request, filters),
            self._texts.search(
                namespace.dimension,
                namespace.id,
                request.text_query,
                limit=request.limit,
                filters=filters,
            ),
        )

        vector_ids = [
            hit.chunk_id
            for hit in hits
            if await self._is_visible(namespace, hit.chunk_id, vector_id=hit.vector_id)
        ]
        text_ids = [chunk_id for chunk_id in text_ids if await self._is_visible(namespace, chunk_id)]

        ranked = hybrid_rank(
            [vector_ids, text_ids],
            k=request.rrf_k or self.settings.rrf_k,
            weights=[request.vector_weight, request.text_weight],
        )[: request.limit]
        return ranked, position_scores(len(ranked))

    async def _vector_hits(
        self,
        namespace: Namespace,
        request: SearchRequest,
        filters: list[NumberedFilter],
    ) -> list[VectorHit]:
        if request.embedding is None:
            return []
        threshold = (
            request.vector_score_threshold
            if request.vector_score_threshold is not None
            else DEFAULT_VECTOR_SCORE_THRESHOLD
        )
        hits = await self._vectors.nearest_neighbors(
            namespace.dimension,
            namespace.id,
            request.embedding,
            limit=request.limit,
            filters=filters,
        )
        return [hit for hit in hits if hit.score >= threshold]

    async def _is_visible(
        self,
        namespace: Namespace,
        chunk_id: str,
        *,
        vector_id: str | None = None,
    ) -> bool:
        """Indexed chunk of a ready document in ``namespace``."""
        chunk = await self._store.get_chunk(chunk_id)
        if chunk is None or chunk.namespace_id != namespace.id:
            logger.warning("Dropping hit for missing chunk %s", chunk_id)
            return False

        match chunk.state:
            case PendingChunkState():
                logger.warning("Dropping hit for pending chunk %s", chunk_id)
                return False
            case ReadyChunkState(vector_id=indexed_vector_id):
                if vector_id is not None and vector_id != indexed_vector_id:
                    logger.warning("Dropping stale vector %s for chunk %s", vector_id, chunk_id)
                    return False
            case _:
                assert_never(chunk.state)

        document = await self._store.get_document(chunk.document_id)
        if document is None or document.status != STATUS_READY:
            logger.debug("Dropping hit for chunk %s of a document that is not ready", chunk_id)
            return False
        return True
