"""Service construction and cached singletons."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from llama_index.core.base.embeddings.base import BaseEmbedding

from rag_memory.config import Settings, get_settings

if TYPE_CHECKING:
    from qdrant_client import AsyncQdrantClient

    from rag_memory.repositories.record_store import RecordStore
    from rag_memory.services.chunk_service import ChunkService
    from rag_memory.services.document_service import DocumentService
    from rag_memory.services.ingestion_service import IngestionService
    from rag_memory.services.namespace_service import NamespaceService
    from rag_memory.services.qdrant_service import QdrantService
    from rag_memory.services.search_service import SearchService
    from rag_memory.services.sparse_encoder import SparseEncoder
    from rag_memory.worker.dispatcher import CompletionCallback, IndexingDispatcher


@dataclass(frozen=True)
class Services:
    """Fully wired service graph."""

    settings: Settings
    qdrant: QdrantService
    store: RecordStore
    namespaces: NamespaceService
    chunks: ChunkService
    documents: DocumentService
    search: SearchService
    dispatcher: IndexingDispatcher
    ingestion: IngestionService

    async def aclose(self) -> None:
        await self.dispatcher.drain()
        await self.qdrant.aclose()


def default_embed_model(settings: Settings) -> BaseEmbedding:
    """OpenAI embedding model configured from settings."""
    from llama_index.embeddings.openai import OpenAIEmbedding  # type: ignore

    # Only the text-embedding-3 family accepts a custom output size
    shortened = settings.openai_embedding_model.startswith("text-embedding-3")
    return OpenAIEmbedding(
        api_key=settings.openai_api_key,
        model=settings.openai_embedding_model,
        dimensions=settings.embedding_dimension if shortened else None,
    )


def build_services(
    settings: Settings,
    *,
    aclient: AsyncQdrantClient | None = None,
    store: RecordStore | None = None,
    embed_model: BaseEmbedding | None = None,
    sparse_encoder: SparseEncoder | None = None,
    on_complete: CompletionCallback | None = None,
) -> Services:
    """Wire every service; collaborators may be injected (primarily for tests)."""
    from rag_memory.repositories.record_store import InMemoryRecordStore
    from rag_memory.repositories.text_repository import TextRepository
    from rag_memory.repositories.vector_repository import VectorRepository
    from rag_memory.services.chunk_service import ChunkService
    from rag_memory.services.document_service import DocumentService
    from rag_memory.services.ingestion_service import IngestionService
    from rag_memory.services.namespace_service import NamespaceService
    from rag_memory.services.qdrant_service import QdrantService
    from rag_memory.services.search_service import SearchService
    from rag_memory.services.sparse_encoder import SparseEncoder
    from rag_memory.worker.dispatcher import IndexingDispatcher

    qdrant = QdrantService(settings, aclient=aclient)
    store = store or InMemoryRecordStore()
    vectors = VectorRepository(qdrant)
    encoder = sparse_encoder or SparseEncoder(settings.sparse_model)
    texts = TextRepository(qdrant, encoder)

    namespaces = NamespaceService(store)
    chunks = ChunkService(store, vectors, encoder)
    documents = DocumentService(
        store, namespaces, chunks, chunk_page_size=settings.chunk_insert_batch_size
    )
    search = SearchService(settings, store, namespaces, chunks, vectors, texts)
    dispatcher = IndexingDispatcher(settings, on_complete=on_complete)
    ingestion = IngestionService(
        settings,
        namespaces,
        documents,
        search,
        embed_model or default_embed_model(settings),
        dispatcher=dispatcher,
    )
    return Services(
        settings=settings,
        qdrant=qdrant,
        store=store,
        namespaces=namespaces,
        chunks=chunks,
        documents=documents,
        search=search,
        dispatcher=dispatcher,
        ingestion=ingestion,
    )


# Module-level cache for the service graph singleton
_services_cache: Services | None = None


def get_services() -> Services:
    """Get or create the cached service graph from environment settings.

    Returns:
        Services instance.
    """
    global _services_cache

    if _services_cache is None:
        _services_cache = build_services(get_settings())

    return _services_cache
