"""Document versions: idempotent upsert, indexing and promotion."""

from __future__ import annotations

import time
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from rag_memory.core.constants import (
    MAX_CONTENT_HASH_ATTEMPTS,
    STATUS_PENDING,
    STATUS_READY,
    STATUS_REPLACED,
)
from rag_memory.core.exceptions import IntegrityException, NotFoundException, ValidationException
from rag_memory.core.logging import get_logger
from rag_memory.core.models import (
    CreateChunk,
    Document,
    DocumentStatus,
    NamedFilter,
    Page,
    PendingChunkState,
    Source,
)
from rag_memory.repositories.record_store import RecordStore, SortOrder
from rag_memory.services.chunk_service import ChunkService
from rag_memory.services.filters import encode_filter_value
from rag_memory.services.namespace_service import NamespaceService

logger = get_logger(__name__)


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of a document upsert."""

    document: Document
    created: bool


def _filter_set(filters: Iterable[NamedFilter]) -> frozenset[tuple[str, str]]:
    return frozenset((f.name, encode_filter_value(f.value)) for f in filters)


def is_same_document(
    existing: Document,
    *,
    content_hash: str | None,
    importance: float,
    filter_values: Sequence[NamedFilter],
) -> bool:
    """Both hashes present and equal, equal importance, equal filter values."""
    if existing.content_hash is None or content_hash is None:
        return False
    return (
        existing.content_hash == content_hash
        and existing.importance == importance
        and _filter_set(existing.filter_values) == _filter_set(filter_values)
    )


class DocumentService:
    """Owns document records and drives their chunks to ready."""

    def __init__(
        self,
        store: RecordStore,
        namespaces: NamespaceService,
        chunks: ChunkService,
        *,
        chunk_page_size: int = 100,
    ):
        self._store = store
        self._namespaces = namespaces
        self._chunks = chunks
        self._chunk_page_size = chunk_page_size

    async def find_existing(
        self,
        namespace_id: str,
        key: str,
        *,
        content_hash: str | None,
        importance: float = 1.0,
        filter_values: Sequence[NamedFilter] = (),
    ) -> Document | None:
        """Latest non-replaced version of ``key`` if it has identical content."""
        for document in await self._store.list_document_versions(namespace_id, key):
            if document.status == STATUS_REPLACED:
                continue
            if is_same_document(
                document,
                content_hash=content_hash,
                importance=importance,
                filter_values=filter_values,
            ):
                return document
            return None
        return None

    async def upsert(
        self,
        *,
        namespace_id: str,
        key: str,
        source: Source,
        content_hash: str | None = None,
        importance: float = 1.0,
        filter_values: Sequence[NamedFilter] = (),
        mime_type: str = "text/plain",
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunks: Sequence[CreateChunk] | None = None,
    ) -> UpsertResult:
        """Create a new pending version of ``key`` unless identical content exists.

        An identical existing version is returned as is (its source is
        patched if it changed). Otherwise the new version gets the next
        version number and, when ``chunks`` are given, its chunks are
        written as pending. Older versions are left for later cleanup.

        Args:
            namespace_id: Namespace generation the document belongs to.
            key: Caller-supplied document key, unique per namespace.
            source: Where the contents came from.
            content_hash: Hash over content and chunking strategy.
            importance: Weight in [0, 1], inherited by chunks.
            filter_values: Named filter values applied to every chunk.
            mime_type: Content type of the original document.
            title: Optional display title.
            metadata: Optional caller metadata.
            chunks: Full chunk list to write with the new version.

        Returns:
            The existing or created document.
        """
        if not key:
            raise ValidationException("Document key must not be empty")
        if not 0.0 <= importance <= 1.0:
            raise ValidationException("Document importance must be within [0, 1]")

        async with self._store.transaction():
            namespace = await self._store.get_namespace(namespace_id)
            if namespace is None:
                raise NotFoundException(f"Namespace {namespace_id} not found")

            existing = await self.find_existing(
                namespace_id,
                key,
                content_hash=content_hash,
                importance=importance,
                filter_values=filter_values,
            )
            if existing is not None:
                if existing.source != source:
                    existing = replace(existing, source=source)
                    await self._store.update_document(existing)
                    logger.info("Patched source of document %s v%d", key, existing.version)
                else:
                    logger.debug("Document %s unchanged (v%d), skipping", key, existing.version)
                return UpsertResult(document=existing, created=False)

            versions = await self._store.list_document_versions(namespace_id, key)
            document = Document(
                id=uuid.uuid4().hex,
                namespace_id=namespace_id,
                key=key,
                version=versions[0].version + 1 if versions else 0,
                source=source,
                status=STATUS_PENDING,
                created_at=time.time(),
                importance=importance,
                content_hash=content_hash,
                mime_type=mime_type,
                title=title,
                metadata=metadata,
                filter_values=tuple(filter_values),
            )
            await self._store.insert_document(document)

        logger.info("Created document %s v%d in namespace %s", key, document.version, namespace.name)
        if chunks:
            await self.insert_chunks(document.id, 0, chunks)
        return UpsertResult(document=document, created=True)

    async def insert_chunks(
        self,
        document_id: str,
        start_order: int,
        chunks: Sequence[CreateChunk],
    ) -> int:
        """Write chunks in batches of ``chunk_page_size``; returns the next order."""
        order = start_order
        for offset in range(0, len(chunks), self._chunk_page_size):
            batch = chunks[offset : offset + self._chunk_page_size]
            order = await self._chunks.insert_chunks(document_id, order, batch)
        return order

    async def write_missing_chunks(self, document_id: str, chunks: Sequence[CreateChunk]) -> int:
        """Resume an interrupted chunk write; chunks already stored are kept."""
        written = await self._store.count_chunks(document_id)
        if written >= len(chunks):
            return written
        return await self.insert_chunks(document_id, written, chunks[written:])

    async def index_document(self, document_id: str) -> Document | None:
        """Index every pending chunk, then promote the document.

        Returns:
            The previously ready version that was replaced, if any.
        """
        cursor: str | None = None
        indexed = 0
        while True:
            page = await self._chunks.list_chunks(
                document_id, cursor=cursor, limit=self._chunk_page_size
            )
            for chunk in page.items:
                if isinstance(chunk.state, PendingChunkState):
                    await self._chunks.index_chunk(chunk.id)
                    indexed += 1
            if page.is_done:
                break
            cursor = page.continue_cursor

        logger.debug("Indexed %d chunks of document %s", indexed, document_id)
        return await self.promote_to_ready(document_id)

    async def promote_to_ready(self, document_id: str) -> Document | None:
        """Mark a fully indexed document ready and the previous ready version replaced.

        Promoting a ready document is a no-op. A document whose key already
        has a newer ready version is marked replaced instead.

        Returns:
            The replaced previous version, if any.
        """
        async with self._store.transaction():
            document = await self._store.get_document(document_id)
            if document is None:
                raise NotFoundException(f"Document {document_id} not found")
            if document.status == STATUS_READY:
                return None
            if document.status == STATUS_REPLACED:
                raise IntegrityException(f"Document {document_id} was already replaced")

            pending = await self._count_pending_chunks(document_id)
            if pending:
                raise IntegrityException(f"Document {document_id} has {pending} unindexed chunks")

            versions = await self._store.list_document_versions(document.namespace_id, document.key)
            if any(v.status == STATUS_READY and v.version > document.version for v in versions):
                await self._store.update_document(replace(document, status=STATUS_REPLACED))
                logger.warning(
                    "Document %s v%d is older than the ready version; marked replaced",
                    document.key,
                    document.version,
                )
                return None

            previous = next((v for v in versions if v.status == STATUS_READY), None)
            if previous is not None:
                previous = replace(previous, status=STATUS_REPLACED)
                await self._store.update_document(previous)
            await self._store.update_document(replace(document, status=STATUS_READY))

        logger.info(
            "Document %s v%d is ready%s",
            document.key,
            document.version,
            f" (replaced v{previous.version})" if previous is not None else "",
        )
        return previous

    async def _count_pending_chunks(self, document_id: str) -> int:
        pending = 0
        cursor: str | None = None
        while True:
            page = await self._store.list_chunks(
                document_id, cursor=cursor, limit=self._chunk_page_size
            )
            pending += sum(1 for chunk in page.items if isinstance(chunk.state, PendingChunkState))
            if page.is_done:
                return pending
            cursor = page.continue_cursor

    async def get(self, document_id: str) -> Document | None:
        return await self._store.get_document(document_id)

    async def list(
        self,
        namespace_id: str,
        *,
        status: DocumentStatus | None = None,
        cursor: str | None = None,
        limit: int = 100,
        order: SortOrder = "desc",
    ) -> Page[Document]:
        """Documents of a namespace, newest first unless ``order="asc"``."""
        return await self._store.list_documents(
            namespace_id, status=status, cursor=cursor, limit=limit, order=order
        )

    async def find_by_content_hash(
        self,
        namespace: str,
        *,
        model_id: str,
        dimension: int,
        filter_names: Sequence[str],
        key: str,
        content_hash: str,
    ) -> Document | None:
        """Most recent non-replaced version of ``key`` with ``content_hash``.

        Only the ready namespace generation matching the schema is searched,
        and only the newest ``MAX_CONTENT_HASH_ATTEMPTS`` versions are scanned.
        """
        target = await self._namespaces.get_compatible_namespace(
            namespace, model_id=model_id, dimension=dimension, filter_names=filter_names
        )
        if target is None:
            return None
        versions = await self._store.list_document_versions(target.id, key)
        for document in versions[:MAX_CONTENT_HASH_ATTEMPTS]:
            if document.status != STATUS_REPLACED and document.content_hash == content_hash:
                return document
        return None

    async def delete_document(self, document_id: str) -> None:
        """Delete a document with its chunks, content and vector entries."""
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundException(f"Document {document_id} not found")
        namespace = await self._store.get_namespace(document.namespace_id)
        if namespace is None:
            raise NotFoundException(f"Namespace {document.namespace_id} not found")

        deleted = await self._chunks.delete_chunks(
            document_id, dimension=namespace.dimension, page_size=self._chunk_page_size
        )
        await self._store.delete_document(document_id)
        logger.info("Deleted document %s v%d (%d chunks)", document.key, document.version, deleted)
