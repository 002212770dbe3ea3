"""Record store for namespaces, documents, chunks and chunk content.

Single-record reads and writes are atomic. ``transaction()`` serializes
multi-record read-modify-write sequences; transactions do not nest.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Literal, Protocol, TypeVar

from rag_memory.core.models import (
    Chunk,
    Content,
    Document,
    DocumentStatus,
    Namespace,
    NamespaceStatus,
    Page,
)

T = TypeVar("T")

SortOrder = Literal["asc", "desc"]


class RecordStore(Protocol):
    """Transactional key/secondary-index store consumed by the services."""

    def transaction(self) -> AbstractAsyncContextManager[None]: ...

    # Namespaces
    async def insert_namespace(self, namespace: Namespace) -> None: ...
    async def update_namespace(self, namespace: Namespace) -> None: ...
    async def get_namespace(self, namespace_id: str) -> Namespace | None: ...
    async def list_namespace_versions(self, name: str) -> list[Namespace]: ...
    async def list_namespaces(
        self,
        *,
        status: NamespaceStatus | None = None,
        cursor: str | None = None,
        limit: int = 100,
    ) -> Page[Namespace]: ...

    # Documents
    async def insert_document(self, document: Document) -> None: ...
    async def update_document(self, document: Document) -> None: ...
    async def delete_document(self, document_id: str) -> None: ...
    async def get_document(self, document_id: str) -> Document | None: ...
    async def list_document_versions(self, namespace_id: str, key: str) -> list[Document]: ...
    async def list_documents(
        self,
        namespace_id: str,
        *,
        status: DocumentStatus | None = None,
        cursor: str | None = None,
        limit: int = 100,
        order: SortOrder = "desc",
    ) -> Page[Document]: ...

    # Content
    async def insert_content(self, content: Content) -> None: ...
    async def get_content(self, content_id: str) -> Content | None: ...
    async def delete_content(self, content_id: str) -> None: ...
    async def count_content_references(self, content_id: str) -> int: ...

    # Chunks
    async def insert_chunk(self, chunk: Chunk) -> None: ...
    async def update_chunk(self, chunk: Chunk) -> None: ...
    async def delete_chunk(self, chunk_id: str) -> None: ...
    async def get_chunk(self, chunk_id: str) -> Chunk | None: ...
    async def get_chunk_by_order(self, document_id: str, order: int) -> Chunk | None: ...
    async def count_chunks(self, document_id: str) -> int: ...
    async def list_chunks(
        self,
        document_id: str,
        *,
        cursor: str | None = None,
        limit: int = 100,
    ) -> Page[Chunk]: ...


def paginate(items: Sequence[T], cursor: str | None, limit: int) -> Page[T]:
    """Slice ``items`` with an opaque offset cursor."""
    if limit < 1:
        raise ValueError("limit must be >= 1")
    try:
        start = int(cursor) if cursor else 0
    except ValueError as exc:
        raise ValueError(f"Invalid cursor: {cursor!r}") from exc
    end = start + limit
    is_done = end >= len(items)
    return Page(
        items=list(items[start:end]),
        continue_cursor=None if is_done else str(end),
        is_done=is_done,
    )


class InMemoryRecordStore:
    """Process-local record store."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sequence = itertools.count()
        self._inserted_at: dict[str, int] = {}

        self._namespaces: dict[str, Namespace] = {}
        self._documents: dict[str, Document] = {}
        self._contents: dict[str, Content] = {}
        self._chunks: dict[str, Chunk] = {}
        self._chunk_by_order: dict[tuple[str, int], str] = {}

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self._lock:
            yield

    def _track(self, record_id: str) -> None:
        self._inserted_at[record_id] = next(self._sequence)

    def _newest_first(self, records: list[T], ids: list[str]) -> list[T]:
        ranked = sorted(zip(ids, records), key=lambda pair: self._inserted_at[pair[0]], reverse=True)
        return [record for _, record in ranked]

    # Namespaces

    async def insert_namespace(self, namespace: Namespace) -> None:
        if namespace.id in self._namespaces:
            raise KeyError(f"Namespace {namespace.id} already exists")
        self._namespaces[namespace.id] = namespace
        self._track(namespace.id)

    async def update_namespace(self, namespace: Namespace) -> None:
        if namespace.id not in self._namespaces:
            raise KeyError(f"Namespace {namespace.id} does not exist")
        self._namespaces[namespace.id] = namespace

    async def get_namespace(self, namespace_id: str) -> Namespace | None:
        return self._namespaces.get(namespace_id)

    async def list_namespace_versions(self, name: str) -> list[Namespace]:
        """All versions of a namespace, highest version first."""
        versions = [ns for ns in self._namespaces.values() if ns.name == name]
        return sorted(versions, key=lambda ns: ns.version, reverse=True)

    async def list_namespaces(
        self,
        *,
        status: NamespaceStatus | None = None,
        cursor: str | None = None,
        limit: int = 100,
    ) -> Page[Namespace]:
        matching = [
            ns for ns in self._namespaces.values() if status is None or ns.status == status
        ]
        ordered = self._newest_first(matching, [ns.id for ns in matching])
        return paginate(ordered, cursor, limit)

    # Documents

    async def insert_document(self, document: Document) -> None:
        if document.id in self._documents:
            raise KeyError(f"Document {document.id} already exists")
        self._documents[document.id] = document
        self._track(document.id)

    async def update_document(self, document: Document) -> None:
        if document.id not in self._documents:
            raise KeyError(f"Document {document.id} does not exist")
        self._documents[document.id] = document

    async def delete_document(self, document_id: str) -> None:
        self._documents.pop(document_id, None)
        self._inserted_at.pop(document_id, None)

    async def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    async def list_document_versions(self, namespace_id: str, key: str) -> list[Document]:
        """All versions of a document key, highest version first."""
        versions = [
            doc
            for doc in self._documents.values()
            if doc.namespace_id == namespace_id and doc.key == key
        ]
        return sorted(versions, key=lambda doc: doc.version, reverse=True)

    async def list_documents(
        self,
        namespace_id: str,
        *,
        status: DocumentStatus | None = None,
        cursor: str | None = None,
        limit: int = 100,
        order: SortOrder = "desc",
    ) -> Page[Document]:
        matching = [
            doc
            for doc in self._documents.values()
            if doc.namespace_id == namespace_id and (status is None or doc.status == status)
        ]
        ordered = self._newest_first(matching, [doc.id for doc in matching])
        if order == "asc":
            ordered.reverse()
        return paginate(ordered, cursor, limit)

    # Content

    async def insert_content(self, content: Content) -> None:
        self._contents[content.id] = content

    async def get_content(self, content_id: str) -> Content | None:
        return self._contents.get(content_id)

    async def delete_content(self, content_id: str) -> None:
        self._contents.pop(content_id, None)

    async def count_content_references(self, content_id: str) -> int:
        """Chunks, across all documents, whose text is ``content_id``."""
        return sum(1 for chunk in self._chunks.values() if chunk.content_id == content_id)

    # Chunks

    async def insert_chunk(self, chunk: Chunk) -> None:
        slot = (chunk.document_id, chunk.order)
        if slot in self._chunk_by_order:
            raise KeyError(f"Chunk {chunk.order} of document {chunk.document_id} already exists")
        self._chunks[chunk.id] = chunk
        self._chunk_by_order[slot] = chunk.id

    async def update_chunk(self, chunk: Chunk) -> None:
        current = self._chunks.get(chunk.id)
        if current is None:
            raise KeyError(f"Chunk {chunk.id} does not exist")
        if (current.document_id, current.order) != (chunk.document_id, chunk.order):
            raise ValueError("Chunk document and order are immutable")
        self._chunks[chunk.id] = chunk

    async def delete_chunk(self, chunk_id: str) -> None:
        chunk = self._chunks.pop(chunk_id, None)
        if chunk is not None:
            self._chunk_by_order.pop((chunk.document_id, chunk.order), None)

    async def get_chunk(self, chunk_id: str) -> Chunk | None:
        return self._chunks.get(chunk_id)

    async def get_chunk_by_order(self, document_id: str, order: int) -> Chunk | None:
        chunk_id = self._chunk_by_order.get((document_id, order))
        return self._chunks.get(chunk_id) if chunk_id is not None else None

    async def count_chunks(self, document_id: str) -> int:
        return sum(1 for doc_id, _ in self._chunk_by_order if doc_id == document_id)

    async def list_chunks(
        self,
        document_id: str,
        *,
        cursor: str | None = None,
        limit: int = 100,
    ) -> Page[Chunk]:
        """Chunks of a document in ascending order."""
        orders = sorted(order for doc_id, order in self._chunk_by_order if doc_id == document_id)
        chunks = [self._chunks[self._chunk_by_order[(document_id, order)]] for order in orders]
        return paginate(chunks, cursor, limit)
