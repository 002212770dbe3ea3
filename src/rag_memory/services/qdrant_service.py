"""Qdrant service managing one vector collection per embedding dimension."""

from __future__ import annotations

from collections.abc import Sequence

from qdrant_client import AsyncQdrantClient
from qdrant_client import models as q

from rag_memory.config import Settings
from rag_memory.core.constants import (
    DENSE_VEC,
    FILTER_FIELD_NAMES,
    K_CHUNK_ID,
    K_DOCUMENT_ID,
    K_NAMESPACE_ID,
    SPARSE_VEC,
    VECTOR_DIMENSIONS,
)
from rag_memory.core.exceptions import ValidationException
from rag_memory.core.logging import get_logger

logger = get_logger(__name__)


class QdrantService:
    """Thin wrapper around the async Qdrant client, sharded by dimension."""

    def __init__(
        self,
        settings: Settings,
        aclient: AsyncQdrantClient | None = None,
    ):
        self.settings = settings
        self.prefix = settings.qdrant_collection_prefix

        if aclient is not None:
            self.aclient = aclient
        elif settings.qdrant_local_mode:
            self.aclient = AsyncQdrantClient(location=":memory:")
        else:
            self.aclient = AsyncQdrantClient(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefer_grpc=settings.qdrant_prefer_grpc,
                timeout=settings.qdrant_timeout,
            )
        self._ensured: set[int] = set()

        logger.info("QdrantService initialized with collection prefix '%s'", self.prefix)

    async def aclose(self) -> None:
        """Close the client."""
        await self.aclient.close()

    def collection_name(self, dimension: int) -> str:
        """Name of the vector table holding ``dimension``-sized embeddings."""
        if dimension not in VECTOR_DIMENSIONS:
            raise ValidationException(
                f"Unsupported embedding dimension {dimension}; expected one of {list(VECTOR_DIMENSIONS)}"
            )
        return f"{self.prefix}_{dimension}"

    async def ensure_collection(self, dimension: int) -> None:
        """Ensure the dimension's collection exists with its vectors and payload indexes.

        Each point carries a named dense vector and a BM25 sparse vector whose
        IDF weighting Qdrant computes over the whole collection.
        """
        if dimension in self._ensured:
            return
        name = self.collection_name(dimension)

        if await self.aclient.collection_exists(name):
            logger.debug("Collection '%s' already exists", name)
        else:
            logger.info("Creating collection '%s' (size=%d, cosine)", name, dimension)
            await self.aclient.create_collection(
                collection_name=name,
                vectors_config={
                    DENSE_VEC: q.VectorParams(size=dimension, distance=q.Distance.COSINE),
                },
                sparse_vectors_config={
                    SPARSE_VEC: q.SparseVectorParams(
                        index=q.SparseIndexParams(on_disk=True),
                        modifier=q.Modifier.IDF,
                    )
                },
            )
            # Embedded Qdrant ignores payload indexes
            if not self.settings.qdrant_local_mode:
                await self._ensure_payload_indexes(name)

        self._ensured.add(dimension)

    async def _ensure_payload_indexes(self, name: str) -> None:
        """Create keyword indexes for the namespace, record and filter fields."""

        async def _create(field_name: str, schema: q.PayloadSchemaType | q.PayloadSchemaParams):
            try:
                await self.aclient.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=schema,
                )
            except Exception as exc:  # pragma: no cover
                # Only ignore already-exists errors; otherwise warn
                if "exists" in str(exc).lower():
                    logger.debug("Index '%s' already exists on '%s'", field_name, name)
                else:
                    logger.warning("Failed to create index '%s' on '%s': %s", field_name, name, exc)

        logger.info("Ensuring payload indexes for '%s'", name)
        await _create(
            K_NAMESPACE_ID,
            q.KeywordIndexParams(type=q.KeywordIndexType.KEYWORD, is_tenant=True),
        )
        await _create(K_DOCUMENT_ID, q.PayloadSchemaType.KEYWORD)
        await _create(K_CHUNK_ID, q.PayloadSchemaType.KEYWORD)
        for field_name in FILTER_FIELD_NAMES:
            await _create(field_name, q.PayloadSchemaType.KEYWORD)

    async def collection_exists(self, dimension: int) -> bool:
        """Return True if the dimension's collection already exists."""
        if dimension in self._ensured:
            return True
        return await self.aclient.collection_exists(self.collection_name(dimension))

    async def upsert_points(
        self,
        dimension: int,
        points: Sequence[q.PointStruct],
        *,
        wait: bool = True,
    ) -> None:
        """Upsert raw points into the dimension's collection."""
        if not points:
            return
        await self.ensure_collection(dimension)
        name = self.collection_name(dimension)
        await self.aclient.upsert(collection_name=name, points=list(points), wait=wait)
        logger.debug("Upserted %d points into '%s'", len(points), name)

    async def query_points(
        self,
        dimension: int,
        query: Sequence[float] | q.SparseVector,
        *,
        using: str = DENSE_VEC,
        limit: int,
        filter_: q.Filter | None = None,
        with_payload: bool = True,
    ) -> list[q.ScoredPoint]:
        """Best matches of ``query`` against the ``using`` vector, best first."""
        response = await self.aclient.query_points(
            collection_name=self.collection_name(dimension),
            query=query if isinstance(query, q.SparseVector) else list(query),
            using=using,
            query_filter=filter_,
            limit=limit,
            with_payload=with_payload,
            with_vectors=False,
        )
        return response.points

    async def retrieve_by_ids(
        self,
        dimension: int,
        point_ids: Sequence[str],
        *,
        with_payload: bool = True,
        with_vectors: bool = False,
    ) -> list[q.Record]:
        """Fetch records by their IDs."""
        if not point_ids:
            return []
        return await self.aclient.retrieve(
            collection_name=self.collection_name(dimension),
            ids=list(point_ids),
            with_payload=with_payload,
            with_vectors=with_vectors,
        )

    async def delete(
        self,
        dimension: int,
        ids: Sequence[str],
        *,
        wait: bool = True,
    ) -> None:
        """Delete points by IDs."""
        await self.aclient.delete(
            collection_name=self.collection_name(dimension),
            points_selector=q.PointIdsList(points=list(ids)),
            wait=wait,
        )


__all__ = ["QdrantService"]
