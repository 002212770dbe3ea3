"""Tests for the ingestion facade."""

from __future__ import annotations

import pytest
from llama_index.core.base.embeddings.base import BaseEmbedding
from qdrant_client import AsyncQdrantClient

from rag_memory.config import Settings
from rag_memory.core.exceptions import ValidationException
from rag_memory.core.models import NamedFilter, ReadyChunkState, StorageSource, UrlSource
from rag_memory.dependencies import Services, build_services
from rag_memory.services.sparse_encoder import SparseEncoder
from rag_memory.text_processing.chunker import ChunkerOptions
from rag_memory.worker.dispatcher import CompletionEvent

pytestmark = pytest.mark.asyncio


# ---------- Fake embedding with the wrong output size ----------
class _ShortEmbedding(BaseEmbedding):
    def _get_text_embedding(self, text: str):
        return [1.0] * 3

    async def _aget_text_embedding(self, text: str):
        return [1.0] * 3

    def _get_query_embedding(self, query: str):
        return [1.0] * 3

    async def _aget_query_embedding(self, query: str):
        return [1.0] * 3


async def test_ingest_text_makes_document_searchable(services: Services) -> None:
    text = "First paragraph about otters.\n\nSecond paragraph about beavers."

    result = await services.ingestion.ingest(
        "kb",
        "animals.txt",
        text=text,
        title="Animals",
        chunker_options=ChunkerOptions(min_chars_soft_limit=10, max_chars_soft_limit=40),
    )

    assert result.created
    assert result.status == "ready"
    assert result.replaced_document is None
    chunks = (await services.chunks.list_chunks(result.document.id)).items
    texts = [await services.chunks.get_text(c) for c in chunks]
    assert "\n".join(t or "" for t in texts) == text
    assert len(chunks) == 2
    assert all(isinstance(c.state, ReadyChunkState) for c in chunks)

    response = await services.ingestion.search_text("kb", "beavers", limit=1)
    # The blank separator line moves to the head of the second chunk
    assert response.results[0].text == "\nSecond paragraph about beavers."
    assert response.entries[0].title == "Animals"


async def test_reingesting_identical_content_is_a_noop(services: Services) -> None:
    first = await services.ingestion.ingest("kb", "a.txt", text="Same text")
    second = await services.ingestion.ingest(
        "kb", "a.txt", text="Same text", source=StorageSource("blob-9")
    )

    assert not second.created
    assert second.status == "ready"
    assert second.document.id == first.document.id
    assert second.document.source == StorageSource("blob-9")


async def test_changed_content_replaces_previous_version(services: Services) -> None:
    first = await services.ingestion.ingest("kb", "a.txt", text="Version one")
    second = await services.ingestion.ingest("kb", "a.txt", text="Version two")

    assert second.created
    assert second.document.version == 1
    assert second.replaced_document is not None
    assert second.replaced_document.id == first.document.id
    assert (await services.documents.get(first.document.id)).status == "replaced"  # type: ignore[union-attr]


async def test_changed_chunking_reingests(services: Services) -> None:
    text = "line one\nline two"
    first = await services.ingestion.ingest("kb", "a.txt", text=text)
    second = await services.ingestion.ingest(
        "kb", "a.txt", text=text, chunker_options=ChunkerOptions(max_chars_soft_limit=500)
    )

    assert second.created
    assert second.document.content_hash != first.document.content_hash


async def test_prechunked_ingest(services: Services) -> None:
    result = await services.ingestion.ingest(
        "kb",
        "page",
        chunks=["piece one", "piece two"],
        source=UrlSource("https://example.com/page"),
        filter_names=["site"],
        filter_values=[NamedFilter("site", "example.com")],
    )

    chunks = (await services.chunks.list_chunks(result.document.id)).items
    assert [await services.chunks.get_text(c) for c in chunks] == ["piece one", "piece two"]
    assert result.document.filter_values == (NamedFilter("site", "example.com"),)


async def test_schema_change_starts_new_namespace_generation(services: Services) -> None:
    await services.ingestion.ingest("kb", "a.txt", text="old schema", filter_names=["x"])
    await services.ingestion.ingest("kb", "b.txt", text="new schema", filter_names=["y"])

    page = await services.namespaces.list()
    assert sorted(ns.version for ns in page.items) == [0, 1]


async def test_text_xor_chunks_required(services: Services) -> None:
    with pytest.raises(ValidationException):
        await services.ingestion.ingest("kb", "a.txt")
    with pytest.raises(ValidationException):
        await services.ingestion.ingest("kb", "a.txt", text="x", chunks=["x"])


async def test_embedding_size_mismatch_rejected(
    aclient_local: AsyncQdrantClient, test_settings: Settings, sparse_encoder: SparseEncoder
) -> None:
    services = build_services(
        test_settings,
        aclient=aclient_local,
        embed_model=_ShortEmbedding(model_name="short"),
        sparse_encoder=sparse_encoder,
    )

    with pytest.raises(ValidationException):
        await services.ingestion.ingest("kb", "a.txt", text="anything")


async def test_ingest_async_indexes_in_background(
    aclient_local: AsyncQdrantClient,
    test_settings: Settings,
    embed_model: BaseEmbedding,
    sparse_encoder: SparseEncoder,
) -> None:
    events: list[CompletionEvent] = []

    async def on_complete(event: CompletionEvent) -> None:
        events.append(event)

    services = build_services(
        test_settings,
        aclient=aclient_local,
        embed_model=embed_model,
        sparse_encoder=sparse_encoder,
        on_complete=on_complete,
    )

    result = await services.ingestion.ingest_async("kb", "a.txt", text="background otters")
    assert result.status == "pending"
    assert services.dispatcher.pending == 1

    await services.dispatcher.drain()

    (event,) = events
    assert event.success
    assert event.document_id == result.document.id
    assert (await services.documents.get(result.document.id)).status == "ready"  # type: ignore[union-attr]
    response = await services.ingestion.search_text("kb", "otters")
    assert response.results[0].text == "background otters"

    again = await services.ingestion.ingest_async("kb", "a.txt", text="background otters")
    assert not again.created
    assert again.status == "ready"
    assert services.dispatcher.pending == 0
