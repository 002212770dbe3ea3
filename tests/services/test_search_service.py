"""Tests for vector, text and hybrid search."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

import pytest
from llama_index.core.base.embeddings.base import BaseEmbedding
from pydantic import ValidationError
from qdrant_client import AsyncQdrantClient

from rag_memory.config import Settings
from rag_memory.core.exceptions import UnknownFilterError
from rag_memory.core.models import CreateChunk, InlineSource, NamedFilter, VectorEntry
from rag_memory.dependencies import Services, build_services
from rag_memory.repositories.vector_repository import VectorRepository
from rag_memory.schemas.search import ChunkContext, SearchFilter, SearchRequest
from rag_memory.services.hybrid_rank import position_scores
from rag_memory.services.point_ids import vector_point_id
from rag_memory.services.sparse_encoder import SparseEncoder

pytestmark = pytest.mark.asyncio

MODEL = "keyword-test"
TEST_DIMENSION = 128


def _request(vectorize: Callable[[str], list[float]], query: str, **kwargs: object) -> SearchRequest:
    return SearchRequest(
        namespace="kb",
        model_id=MODEL,
        embedding=vectorize(query),
        **kwargs,  # type: ignore[arg-type]
    )


async def test_unknown_namespace_returns_empty(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    response = await services.search.search(_request(vectorize, "anything"))

    assert response.results == []
    assert response.entries == []


async def test_incompatible_model_returns_empty(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest("kb", "a", chunks=["apple banana"])

    request = SearchRequest(namespace="kb", model_id="other-model", embedding=vectorize("apple"))

    assert (await services.search.search(request)).results == []


async def test_vector_search_ranks_by_similarity(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest("kb", "fruit", chunks=["apple banana cherry"], title="Fruit")
    await services.ingestion.ingest("kb", "space", chunks=["rocket engine orbit"])

    response = await services.search.search(_request(vectorize, "apple banana", limit=2))

    assert [r.text for r in response.results] == ["apple banana cherry", "rocket engine orbit"]
    assert response.results[0].score > response.results[1].score
    assert {e.key for e in response.entries} == {"fruit", "space"}
    fruit = next(e for e in response.entries if e.key == "fruit")
    assert fruit.title == "Fruit"
    assert fruit.status == "ready"


async def test_score_threshold_drops_weak_matches(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest("kb", "fruit", chunks=["apple banana cherry"])
    await services.ingestion.ingest("kb", "space", chunks=["rocket engine orbit"])

    response = await services.search.search(
        _request(vectorize, "apple banana", vector_score_threshold=0.5)
    )

    assert [r.text for r in response.results] == ["apple banana cherry"]


async def test_limit_zero(services: Services, vectorize: Callable[[str], list[float]]) -> None:
    await services.ingestion.ingest("kb", "fruit", chunks=["apple"])

    assert (await services.search.search(_request(vectorize, "apple", limit=0))).results == []


async def test_filters_are_ored(services: Services, vectorize: Callable[[str], list[float]]) -> None:
    for key, topic, lang in [("a", "fruit", "en"), ("b", "space", "en"), ("c", "space", "de")]:
        await services.ingestion.ingest(
            "kb",
            key,
            chunks=[f"common words {key}"],
            filter_names=["topic", "lang"],
            filter_values=[NamedFilter("topic", topic), NamedFilter("lang", lang)],
        )

    fruit = await services.search.search(
        _request(vectorize, "common words", filters=[SearchFilter(name="topic", value="fruit")])
    )
    fruit_or_german = await services.search.search(
        _request(
            vectorize,
            "common words",
            filters=[
                SearchFilter(name="topic", value="fruit"),
                SearchFilter(name="lang", value="de"),
            ],
        )
    )

    assert [e.key for e in fruit.entries] == ["a"]
    assert sorted(e.key for e in fruit_or_german.entries) == ["a", "c"]


async def test_only_unknown_filters_returns_empty(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest("kb", "a", chunks=["apple"], filter_names=["topic"])

    response = await services.search.search(
        _request(vectorize, "apple", filters=[SearchFilter(name="color", value="red")])
    )

    assert response.results == []


async def test_unknown_filter_raises_in_strict_mode(
    aclient_local: AsyncQdrantClient,
    test_settings: Settings,
    embed_model: BaseEmbedding,
    sparse_encoder: SparseEncoder,
    vectorize: Callable[[str], list[float]],
) -> None:
    strict = build_services(
        test_settings.model_copy(update={"strict_filters": True}),
        aclient=aclient_local,
        embed_model=embed_model,
        sparse_encoder=sparse_encoder,
    )
    await strict.ingestion.ingest("kb", "a", chunks=["apple"], filter_names=["topic"])

    with pytest.raises(UnknownFilterError):
        await strict.search.search(
            _request(vectorize, "apple", filters=[SearchFilter(name="color", value="red")])
        )


async def test_pending_documents_are_invisible(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    namespace = await services.namespaces.get_or_create(
        "kb", status="ready", model_id=MODEL, dimension=TEST_DIMENSION
    )
    result = await services.documents.upsert(
        namespace_id=namespace.id,
        key="draft",
        source=InlineSource(),
        chunks=[CreateChunk(text="secret draft", embedding=vectorize("secret draft"))],
    )
    # Indexed chunk, but the document itself is still pending
    chunk = (await services.chunks.list_chunks(result.document.id)).items[0]
    await services.chunks.index_chunk(chunk.id)

    response = await services.search.search(_request(vectorize, "secret draft", text_query="secret"))

    assert response.results == []

    await services.documents.promote_to_ready(result.document.id)
    response = await services.search.search(_request(vectorize, "secret draft"))
    assert [r.text for r in response.results] == ["secret draft"]


async def test_vector_of_pending_chunk_is_invisible(
    services: Services,
    sparse_encoder: SparseEncoder,
    vectorize: Callable[[str], list[float]],
) -> None:
    namespace = await services.namespaces.get_or_create(
        "kb", status="ready", model_id=MODEL, dimension=TEST_DIMENSION
    )
    result = await services.documents.upsert(
        namespace_id=namespace.id,
        key="walrus",
        source=InlineSource(),
        chunks=[CreateChunk(text="walrus tusks", embedding=vectorize("walrus tusks"))],
    )
    chunk = (await services.chunks.list_chunks(result.document.id)).items[0]
    # Vector point written, chunk record never marked ready
    [sparse] = await sparse_encoder.encode_documents(["walrus tusks"])
    await VectorRepository(services.qdrant).insert(
        TEST_DIMENSION,
        VectorEntry(
            id=vector_point_id(chunk.id),
            namespace_id=namespace.id,
            document_id=result.document.id,
            chunk_id=chunk.id,
            order=0,
            searchable_text="walrus tusks",
            embedding=vectorize("walrus tusks"),
            sparse_embedding=sparse,
        ),
    )
    await services.store.update_document(replace(result.document, status="ready"))

    vector_only = await services.search.search(_request(vectorize, "walrus tusks"))
    hybrid = await services.search.search(
        _request(vectorize, "walrus tusks", text_query="walrus")
    )

    assert vector_only.results == []
    assert hybrid.results == []


async def test_replaced_versions_are_invisible(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest("kb", "doc", chunks=["old walrus facts"])
    second = await services.ingestion.ingest("kb", "doc", chunks=["new penguin facts"])

    response = await services.search.search(
        _request(vectorize, "walrus facts", text_query="walrus facts")
    )

    assert [r.text for r in response.results] == ["new penguin facts"]
    assert [e.document_id for e in response.entries] == [second.document.id]
    assert response.entries[0].version == 1


async def test_hybrid_search_merges_text_and_vector_lists(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest(
        "kb", "zoo", chunks=["zebra stripes savanna", "lion pride hunting", "giraffe neck trees"]
    )

    response = await services.search.search(
        _request(vectorize, "lion hunting", text_query="lion hunting", limit=3)
    )

    assert response.results[0].text == "lion pride hunting"
    assert [r.score for r in response.results] == position_scores(len(response.results))


async def test_text_weight_zero_follows_vector_order(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest("kb", "zoo", chunks=["zebra stripes", "lion pride"])

    response = await services.search.search(
        _request(vectorize, "zebra stripes", text_query="lion", text_weight=0.0, limit=2)
    )

    assert [r.text for r in response.results] == ["zebra stripes", "lion pride"]


async def test_text_only_search(services: Services) -> None:
    await services.ingestion.ingest("kb", "zoo", chunks=["zebra stripes", "lion pride"])

    response = await services.search.search(
        SearchRequest(namespace="kb", model_id=MODEL, dimension=TEST_DIMENSION, text_query="LION")
    )

    assert [r.text for r in response.results] == ["lion pride"]
    assert response.results[0].score == 1.0


async def test_chunk_context_is_spliced(
    services: Services, vectorize: Callable[[str], list[float]]
) -> None:
    await services.ingestion.ingest(
        "kb",
        "nato",
        chunks=["alpha one", "bravo two", "charlie three", "delta four", "echo five"],
    )

    response = await services.search.search(
        _request(
            vectorize,
            "charlie three",
            limit=1,
            chunk_context=ChunkContext(before=1, after=1),
        )
    )

    (result,) = response.results
    assert result.order == 2
    assert result.start_order == 1
    assert result.text == "bravo two\ncharlie three\ndelta four"


async def test_search_text_facade(services: Services) -> None:
    await services.ingestion.ingest("kb", "fruit", chunks=["apple banana cherry"])
    await services.ingestion.ingest("kb", "space", chunks=["rocket engine orbit"])

    response = await services.ingestion.search_text("kb", "rocket orbit", limit=1)

    assert response.text == "rocket engine orbit"


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"text_query": "x"},
        {"embedding": [0.1, 0.2], "dimension": 3},
        {"embedding": []},
        {"embedding": [0.1], "limit": -1},
    ],
)
async def test_invalid_requests(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        SearchRequest(namespace="kb", model_id=MODEL, **kwargs)  # type: ignore[arg-type]
