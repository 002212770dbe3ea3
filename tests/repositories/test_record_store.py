"""Tests for the in-memory record store."""

from __future__ import annotations

from dataclasses import replace

import pytest

from rag_memory.core.models import (
    Chunk,
    Content,
    Document,
    InlineSource,
    Namespace,
    PendingChunkState,
)
from rag_memory.repositories.record_store import InMemoryRecordStore, paginate


def _namespace(ns_id: str, version: int, status: str = "pending") -> Namespace:
    return Namespace(
        id=ns_id,
        name="docs",
        version=version,
        model_id="m",
        dimension=128,
        filter_names=(),
        status=status,  # type: ignore[arg-type]
        created_at=0.0,
    )


def _document(doc_id: str, version: int, *, key: str = "k", status: str = "pending") -> Document:
    return Document(
        id=doc_id,
        namespace_id="ns",
        key=key,
        version=version,
        source=InlineSource(),
        status=status,  # type: ignore[arg-type]
        created_at=0.0,
    )


def _chunk(chunk_id: str, order: int, document_id: str = "doc") -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        namespace_id="ns",
        order=order,
        content_id=f"content-{chunk_id}",
        importance=1.0,
        state=PendingChunkState(embedding=(0.1,)),
    )


def test_paginate() -> None:
    first = paginate([1, 2, 3], None, 2)
    assert first.items == [1, 2]
    assert not first.is_done

    second = paginate([1, 2, 3], first.continue_cursor, 2)
    assert second.items == [3]
    assert second.is_done
    assert second.continue_cursor is None


@pytest.mark.parametrize("cursor,limit", [("nope", 1), (None, 0)])
def test_paginate_rejects_bad_arguments(cursor: str | None, limit: int) -> None:
    with pytest.raises(ValueError):
        paginate([1], cursor, limit)


@pytest.mark.asyncio
async def test_namespace_versions_and_listing() -> None:
    store = InMemoryRecordStore()
    await store.insert_namespace(_namespace("a", 0, "ready"))
    await store.insert_namespace(_namespace("b", 1))

    versions = await store.list_namespace_versions("docs")
    assert [ns.version for ns in versions] == [1, 0]

    page = await store.list_namespaces(status="ready")
    assert [ns.id for ns in page.items] == ["a"]
    assert [ns.id for ns in (await store.list_namespaces()).items] == ["b", "a"]

    with pytest.raises(KeyError):
        await store.insert_namespace(_namespace("a", 2))
    with pytest.raises(KeyError):
        await store.update_namespace(_namespace("zzz", 0))


@pytest.mark.asyncio
async def test_document_versions_and_listing() -> None:
    store = InMemoryRecordStore()
    await store.insert_document(_document("d0", 0, status="ready"))
    await store.insert_document(_document("d1", 1))
    await store.insert_document(_document("other", 0, key="other"))

    assert [d.id for d in await store.list_document_versions("ns", "k")] == ["d1", "d0"]

    newest = await store.list_documents("ns")
    assert [d.id for d in newest.items] == ["other", "d1", "d0"]
    oldest = await store.list_documents("ns", order="asc", limit=2)
    assert [d.id for d in oldest.items] == ["d0", "d1"]
    assert oldest.continue_cursor == "2"
    ready = await store.list_documents("ns", status="ready")
    assert [d.id for d in ready.items] == ["d0"]

    await store.delete_document("d0")
    assert await store.get_document("d0") is None


@pytest.mark.asyncio
async def test_chunks_are_unique_per_order() -> None:
    store = InMemoryRecordStore()
    await store.insert_chunk(_chunk("c1", 1))
    await store.insert_chunk(_chunk("c0", 0))

    with pytest.raises(KeyError):
        await store.insert_chunk(_chunk("dup", 0))

    assert (await store.get_chunk_by_order("doc", 1)).id == "c1"  # type: ignore[union-attr]
    assert await store.count_chunks("doc") == 2
    assert [c.id for c in (await store.list_chunks("doc")).items] == ["c0", "c1"]

    await store.delete_chunk("c0")
    assert await store.get_chunk_by_order("doc", 0) is None
    assert await store.count_chunks("doc") == 1


@pytest.mark.asyncio
async def test_chunk_order_is_immutable() -> None:
    store = InMemoryRecordStore()
    await store.insert_chunk(_chunk("c0", 0))

    with pytest.raises(ValueError):
        await store.update_chunk(_chunk("c0", 5))


@pytest.mark.asyncio
async def test_content_round_trip() -> None:
    store = InMemoryRecordStore()
    await store.insert_content(Content(id="x", text="hello"))

    assert (await store.get_content("x")).text == "hello"  # type: ignore[union-attr]
    await store.delete_content("x")
    assert await store.get_content("x") is None


@pytest.mark.asyncio
async def test_count_content_references() -> None:
    store = InMemoryRecordStore()
    await store.insert_chunk(replace(_chunk("a", 0), content_id="shared"))
    await store.insert_chunk(replace(_chunk("b", 0, document_id="other"), content_id="shared"))

    assert await store.count_content_references("shared") == 2
    await store.delete_chunk("a")
    assert await store.count_content_references("shared") == 1
    assert await store.count_content_references("unused") == 0


@pytest.mark.asyncio
async def test_transaction_serializes() -> None:
    store = InMemoryRecordStore()
    async with store.transaction():
        await store.insert_content(Content(id="x", text="inside"))
    async with store.transaction():
        assert await store.get_content("x") is not None
