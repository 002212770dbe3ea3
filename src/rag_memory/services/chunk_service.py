"""Chunk writes, pending -> ready indexing, and context range expansion."""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import replace
from typing import assert_never

from rag_memory.core.constants import STATUS_PENDING
from rag_memory.core.exceptions import IntegrityException, NotFoundException, ValidationException
from rag_memory.core.logging import get_logger
from rag_memory.core.models import (
    Chunk,
    ChunkRange,
    Content,
    CreateChunk,
    Page,
    PendingChunkState,
    ReadyChunkState,
    VectorEntry,
)
from rag_memory.repositories.record_store import RecordStore
from rag_memory.repositories.vector_repository import VectorRepository
from rag_memory.services.filters import filter_payload, numbered_filters_from_named
from rag_memory.services.point_ids import vector_point_id
from rag_memory.services.sparse_encoder import SparseEncoder
from rag_memory.text_processing.checksum import compute_chunk_content_id

logger = get_logger(__name__)


class ChunkService:
    """Owns chunk records and their entries in the vector index."""

    def __init__(self, store: RecordStore, vectors: VectorRepository, encoder: SparseEncoder):
        self._store = store
        self._vectors = vectors
        self._encoder = encoder

    async def insert_chunks(
        self,
        document_id: str,
        start_order: int,
        chunks: Sequence[CreateChunk],
    ) -> int:
        """Write ``chunks`` as pending at ``start_order``, ``start_order + 1``, ...

        Orders must stay contiguous from 0: ``start_order`` may not exceed the
        number of chunks already written. Pending chunks in the written range
        are overwritten; indexed ones are not.

        Args:
            document_id: Pending document receiving the chunks.
            start_order: Order of the first chunk in ``chunks``.
            chunks: Chunk text, embedding and optional overrides.

        Returns:
            The order following the last written chunk.
        """
        async with self._store.transaction():
            document = await self._store.get_document(document_id)
            if document is None:
                raise NotFoundException(f"Document {document_id} not found")
            namespace = await self._store.get_namespace(document.namespace_id)
            if namespace is None:
                raise NotFoundException(f"Namespace {document.namespace_id} not found")

            if document.status != STATUS_PENDING:
                raise IntegrityException(
                    f"Document {document_id} is {document.status}; chunks are immutable"
                )
            latest = (await self._store.list_document_versions(namespace.id, document.key))[0]
            if latest.version > document.version:
                raise IntegrityException(
                    f"Document {document.key!r} v{document.version} was superseded by v{latest.version}"
                )

            existing_count = await self._store.count_chunks(document_id)
            if start_order < 0 or start_order > existing_count:
                raise IntegrityException(
                    f"Chunk orders must be contiguous: document {document_id} has "
                    f"{existing_count} chunks, got start_order={start_order}"
                )

            for offset, chunk in enumerate(chunks):
                if len(chunk.embedding) != namespace.dimension:
                    raise ValidationException(
                        f"Chunk {start_order + offset} embedding has {len(chunk.embedding)} "
                        f"dimensions, namespace expects {namespace.dimension}"
                    )
                if chunk.importance is not None and not 0.0 <= chunk.importance <= 1.0:
                    raise ValidationException("Chunk importance must be within [0, 1]")

            filters = tuple(
                numbered_filters_from_named(document.filter_values, namespace.filter_names)
            )

            for offset, chunk in enumerate(chunks):
                order = start_order + offset
                previous = await self._store.get_chunk_by_order(document_id, order)
                if previous is not None:
                    match previous.state:
                        case ReadyChunkState():
                            raise IntegrityException(
                                f"Chunk {order} of document {document_id} is already indexed"
                            )
                        case PendingChunkState():
                            await self._store.delete_chunk(previous.id)
                            await self._release_content(previous.content_id)
                        case _:
                            assert_never(previous.state)

                content = Content(
                    id=compute_chunk_content_id(chunk.text, chunk.metadata),
                    text=chunk.text,
                    metadata=chunk.metadata,
                )
                if await self._store.get_content(content.id) is None:
                    await self._store.insert_content(content)
                await self._store.insert_chunk(
                    Chunk(
                        id=uuid.uuid4().hex,
                        document_id=document_id,
                        namespace_id=namespace.id,
                        order=order,
                        content_id=content.id,
                        importance=(
                            chunk.importance if chunk.importance is not None else document.importance
                        ),
                        state=PendingChunkState(embedding=tuple(chunk.embedding), filters=filters),
                    )
                )

        logger.debug(
            "Inserted %d chunks into document %s at order %d", len(chunks), document_id, start_order
        )
        return start_order + len(chunks)

    async def index_chunk(self, chunk_id: str) -> Chunk:
        """Insert a pending chunk's vector into its table and mark it ready.

        Indexing an already ready chunk is a no-op.
        """
        chunk = await self._store.get_chunk(chunk_id)
        if chunk is None:
            raise NotFoundException(f"Chunk {chunk_id} not found")

        match chunk.state:
            case ReadyChunkState():
                return chunk
            case PendingChunkState(embedding=embedding, filters=filters):
                namespace = await self._store.get_namespace(chunk.namespace_id)
                content = await self._store.get_content(chunk.content_id)
                if namespace is None or content is None:
                    raise NotFoundException(f"Chunk {chunk_id} references missing records")

                [sparse] = await self._encoder.encode_documents([content.text])
                entry = VectorEntry(
                    id=vector_point_id(chunk.id),
                    namespace_id=namespace.id,
                    document_id=chunk.document_id,
                    chunk_id=chunk.id,
                    order=chunk.order,
                    searchable_text=content.text,
                    embedding=list(embedding),
                    sparse_embedding=sparse if sparse.indices else None,
                    filters=filter_payload(filters),
                )
                vector_id = await self._vectors.insert(namespace.dimension, entry)
                ready = replace(
                    chunk,
                    state=ReadyChunkState(vector_id=vector_id, searchable_text=content.text),
                )
                await self._store.update_chunk(ready)
                return ready
            case _:
                assert_never(chunk.state)

    async def list_chunks(
        self,
        document_id: str,
        *,
        cursor: str | None = None,
        limit: int = 100,
    ) -> Page[Chunk]:
        """Chunks of a document in order."""
        return await self._store.list_chunks(document_id, cursor=cursor, limit=limit)

    async def get_text(self, chunk: Chunk) -> str | None:
        content = await self._store.get_content(chunk.content_id)
        return content.text if content is not None else None

    async def _release_content(self, content_id: str) -> None:
        """Delete content no remaining chunk points at. Caller holds the transaction."""
        if await self._store.count_content_references(content_id) == 0:
            await self._store.delete_content(content_id)

    async def delete_chunks(self, document_id: str, *, dimension: int, page_size: int = 100) -> int:
        """Delete every chunk of a document with its content and vector entry."""
        deleted = 0
        while True:
            # Always the first page: the previous one was just deleted.
            page = await self._store.list_chunks(document_id, limit=page_size)
            if not page.items:
                break

            vector_ids: list[str] = []
            for chunk in page.items:
                match chunk.state:
                    case ReadyChunkState(vector_id=vector_id):
                        vector_ids.append(vector_id)
                    case PendingChunkState():
                        pass
                    case _:
                        assert_never(chunk.state)
            await self._vectors.delete(dimension, vector_ids)

            async with self._store.transaction():
                for chunk in page.items:
                    await self._store.delete_chunk(chunk.id)
                    await self._release_content(chunk.content_id)
            deleted += len(page.items)
            if page.is_done:
                break

        logger.debug("Deleted %d chunks of document %s", deleted, document_id)
        return deleted

    async def build_ranges(
        self,
        chunk_ids: Sequence[str],
        *,
        before: int = 0,
        after: int = 0,
    ) -> list[ChunkRange | None]:
        """Expand each chunk into a contiguous range of neighbouring content.

        A range reaches back at most ``before`` chunks but never past the
        previous matched chunk of the same document, and forward at most
        ``after`` chunks but stops where the next matched chunk's preceding
        context begins. Unresolvable chunks yield ``None``.

        Args:
            chunk_ids: Matched chunks, in result order.
            before: Chunks of context to include before each match.
            after: Chunks of context to include after each match.

        Returns:
            One range (or ``None``) per input chunk id, aligned with the input.
        """
        if before < 0 or after < 0:
            raise ValidationException("Chunk context must be non-negative")

        chunks = [await self._store.get_chunk(chunk_id) for chunk_id in chunk_ids]

        orders_by_document: dict[str, list[int]] = defaultdict(list)
        for chunk in chunks:
            if chunk is not None:
                orders_by_document[chunk.document_id].append(chunk.order)
        for orders in orders_by_document.values():
            orders.sort()

        ranges: list[ChunkRange | None] = []
        for chunk_id, chunk in zip(chunk_ids, chunks):
            if chunk is None:
                logger.warning("Chunk %s disappeared before range expansion", chunk_id)
                ranges.append(None)
                continue
            if await self._store.get_document(chunk.document_id) is None:
                logger.warning("Document %s of chunk %s is missing", chunk.document_id, chunk_id)
                ranges.append(None)
                continue

            orders = orders_by_document[chunk.document_id]
            position = orders.index(chunk.order)
            previous_match = orders[position - 1] if position > 0 else None
            next_match = orders[position + 1] if position + 1 < len(orders) else None

            start = max(chunk.order - before, 0)
            if previous_match is not None:
                start = max(start, min(previous_match + 1, chunk.order))
            end = chunk.order + after + 1
            if next_match is not None:
                end = min(end, max(next_match - before, chunk.order + 1))

            contents: list[Content] = []
            first_order = start
            resolved = True
            for order in range(start, end):
                if order == chunk.order:
                    neighbour: Chunk | None = chunk
                else:
                    neighbour = await self._store.get_chunk_by_order(chunk.document_id, order)
                content = (
                    await self._store.get_content(neighbour.content_id)
                    if neighbour is not None
                    else None
                )
                if content is not None:
                    contents.append(content)
                    continue
                if order > chunk.order:
                    # Past the last chunk of the document.
                    break
                logger.warning("Chunk order gap at %d in document %s", order, chunk.document_id)
                if order == chunk.order:
                    resolved = False
                    break
                contents.clear()
                first_order = order + 1

            ranges.append(
                ChunkRange(
                    document_id=chunk.document_id,
                    order=chunk.order,
                    start_order=first_order,
                    content=contents,
                )
                if resolved
                else None
            )

        return ranges
