"""High-level ingestion facade: chunk, embed, write, index, promote."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from llama_index.core.base.embeddings.base import BaseEmbedding

from rag_memory.config import Settings
from rag_memory.core.constants import STATUS_READY
from rag_memory.core.exceptions import ValidationException
from rag_memory.core.logging import get_logger
from rag_memory.core.models import (
    CreateChunk,
    Document,
    DocumentStatus,
    InlineSource,
    Namespace,
    NamedFilter,
    Source,
)
from rag_memory.schemas.search import ChunkContext, SearchFilter, SearchRequest, SearchResponse
from rag_memory.services.document_service import DocumentService
from rag_memory.services.namespace_service import NamespaceService
from rag_memory.services.search_service import SearchService
from rag_memory.text_processing.checksum import compute_content_hash
from rag_memory.text_processing.chunker import ChunkerOptions, chunk_text
from rag_memory.worker.dispatcher import IndexingDispatcher, WorkItem

logger = get_logger(__name__)


@dataclass(slots=True)
class IngestResult:
    """Outcome of an ingest call."""

    document: Document
    status: DocumentStatus
    created: bool
    replaced_document: Document | None = None


class IngestionService:
    """Facade that owns the ingest and text-search flows."""

    def __init__(
        self,
        settings: Settings,
        namespaces: NamespaceService,
        documents: DocumentService,
        search_service: SearchService,
        embed_model: BaseEmbedding,
        dispatcher: IndexingDispatcher | None = None,
    ):
        self.settings = settings
        self.namespaces = namespaces
        self.documents = documents
        self.search_service = search_service
        self.embed_model = embed_model
        self.dispatcher = dispatcher
        self.model_id = embed_model.model_name
        self.dimension = settings.embedding_dimension
        self.chunker_options = ChunkerOptions.from_settings(settings)

        logger.info(
            "IngestionService initialized (model=%s, dimension=%d)", self.model_id, self.dimension
        )

    async def ingest(
        self,
        namespace: str,
        key: str,
        *,
        text: str | None = None,
        chunks: Sequence[str] | None = None,
        source: Source | None = None,
        importance: float = 1.0,
        filter_names: Sequence[str] = (),
        filter_values: Sequence[NamedFilter] = (),
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
        mime_type: str = "text/plain",
        chunker_options: ChunkerOptions | None = None,
    ) -> IngestResult:
        """Ingest a document and wait until it is searchable.

        Re-ingesting identical content under the same key is a no-op.

        Args:
            namespace: Logical namespace name; created on first use.
            key: Document key, unique within the namespace.
            text: Raw text, chunked with ``chunker_options``.
            chunks: Pre-chunked text; mutually exclusive with ``text``.
            source: Where the content came from; inline by default.
            importance: Document weight in [0, 1].
            filter_names: Filter schema of the namespace.
            filter_values: Filter values applied to every chunk.
            title: Optional display title.
            metadata: Optional caller metadata.
            mime_type: Content type of the original document.
            chunker_options: Overrides the configured chunker options.

        Returns:
            IngestResult: The ready document and the version it replaced.
        """
        target = await self._namespace(namespace, filter_names)
        pieces, content_hash = self._prepare(text, chunks, chunker_options)
        source = source or InlineSource()

        existing = await self.documents.find_existing(
            target.id,
            key,
            content_hash=content_hash,
            importance=importance,
            filter_values=filter_values,
        )
        if existing is not None and existing.status == STATUS_READY:
            result = await self.documents.upsert(
                namespace_id=target.id,
                key=key,
                source=source,
                content_hash=content_hash,
                importance=importance,
                filter_values=filter_values,
            )
            logger.info("Document %s unchanged in namespace %s", key, namespace)
            return IngestResult(document=result.document, status=STATUS_READY, created=False)

        create_chunks = await self._embed_chunks(pieces)
        result = await self.documents.upsert(
            namespace_id=target.id,
            key=key,
            source=source,
            content_hash=content_hash,
            importance=importance,
            filter_values=filter_values,
            mime_type=mime_type,
            title=title,
            metadata=metadata,
            chunks=create_chunks,
        )
        if not result.created:
            await self.documents.write_missing_chunks(result.document.id, create_chunks)

        replaced = await self.documents.index_document(result.document.id)
        document = await self.documents.get(result.document.id) or result.document
        return IngestResult(
            document=document,
            status=document.status,
            created=result.created,
            replaced_document=replaced,
        )

    async def ingest_async(
        self,
        namespace: str,
        key: str,
        *,
        text: str | None = None,
        chunks: Sequence[str] | None = None,
        source: Source | None = None,
        importance: float = 1.0,
        filter_names: Sequence[str] = (),
        filter_values: Sequence[NamedFilter] = (),
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
        mime_type: str = "text/plain",
        chunker_options: ChunkerOptions | None = None,
    ) -> IngestResult:
        """Create the pending document now; embed and index it in the background.

        The dispatcher's completion callback reports when the document is ready.
        """
        if self.dispatcher is None:
            raise RuntimeError("ingest_async requires an IndexingDispatcher")

        target = await self._namespace(namespace, filter_names)
        pieces, content_hash = self._prepare(text, chunks, chunker_options)

        result = await self.documents.upsert(
            namespace_id=target.id,
            key=key,
            source=source or InlineSource(),
            content_hash=content_hash,
            importance=importance,
            filter_values=filter_values,
            mime_type=mime_type,
            title=title,
            metadata=metadata,
        )
        document = result.document
        if document.status == STATUS_READY:
            logger.info("Document %s unchanged in namespace %s", key, namespace)
            return IngestResult(document=document, status=STATUS_READY, created=False)

        async def job() -> Document | None:
            create_chunks = await self._embed_chunks(pieces)
            await self.documents.write_missing_chunks(document.id, create_chunks)
            return await self.documents.index_document(document.id)

        self.dispatcher.submit(
            WorkItem(
                namespace=namespace,
                namespace_id=target.id,
                key=key,
                document_id=document.id,
                job=job,
            )
        )
        return IngestResult(document=document, status=document.status, created=result.created)

    async def search_text(
        self,
        namespace: str,
        query: str,
        *,
        hybrid: bool = True,
        filters: Sequence[NamedFilter] = (),
        limit: int = 10,
        chunk_context: ChunkContext | None = None,
        vector_score_threshold: float | None = None,
    ) -> SearchResponse:
        """Embed ``query`` and search; ``hybrid`` also runs it as a text query."""
        embedding = await self.embed_model.aget_query_embedding(query)
        request = SearchRequest(
            namespace=namespace,
            model_id=self.model_id,
            embedding=embedding,
            text_query=query if hybrid else None,
            filters=[SearchFilter(name=f.name, value=f.value) for f in filters],
            limit=limit,
            vector_score_threshold=vector_score_threshold,
            chunk_context=chunk_context or ChunkContext(),
        )
        return await self.search_service.search(request)

    async def _namespace(self, name: str, filter_names: Sequence[str]) -> Namespace:
        return await self.namespaces.get_or_create(
            name,
            status=STATUS_READY,
            model_id=self.model_id,
            dimension=self.dimension,
            filter_names=filter_names,
        )

    def _prepare(
        self,
        text: str | None,
        chunks: Sequence[str] | None,
        chunker_options: ChunkerOptions | None,
    ) -> tuple[list[str], str]:
        """Chunk texts and the content hash identifying them."""
        if (text is None) == (chunks is None):
            raise ValidationException("Exactly one of text or chunks is required")
        options = chunker_options or self.chunker_options
        if text is not None:
            return chunk_text(text, options), compute_content_hash(text, options)
        pieces = list(chunks or [])
        return pieces, compute_content_hash("\n".join(pieces), options)

    async def _embed_chunks(self, pieces: Sequence[str]) -> list[CreateChunk]:
        if not pieces:
            return []
        embeddings = await self.embed_model.aget_text_embedding_batch(list(pieces))
        for embedding in embeddings:
            if len(embedding) != self.dimension:
                raise ValidationException(
                    f"Embedding model {self.model_id} returned {len(embedding)} dimensions, "
                    f"expected {self.dimension}"
                )
        logger.debug("Embedded %d chunks with %s", len(pieces), self.model_id)
        return [
            CreateChunk(text=piece, embedding=list(embedding))
            for piece, embedding in zip(pieces, embeddings)
        ]
