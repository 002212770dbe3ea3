# conftest.py
import re
import zlib
from collections.abc import Callable

import pytest
import pytest_asyncio
from llama_index.core.base.embeddings.base import BaseEmbedding
from qdrant_client import AsyncQdrantClient

from rag_memory.config import Settings
from rag_memory.dependencies import Services, build_services
from rag_memory.services.qdrant_service import QdrantService
from rag_memory.services.sparse_encoder import SparseEncoder

TEST_DIMENSION = 128


def keyword_vector(text: str, dim: int = TEST_DIMENSION) -> list[float]:
    """Hashed bag-of-words vector: texts sharing words are cosine-similar."""
    vector = [0.0] * dim
    vector[0] = 0.05  # never the zero vector
    for token in re.findall(r"\w+", text.lower()):
        vector[zlib.crc32(token.encode("utf-8")) % (dim - 1) + 1] += 1.0
    return vector


# ---------- Fake embedding so LlamaIndex never calls external APIs ----------
class KeywordEmbedding(BaseEmbedding):
    dim: int = TEST_DIMENSION

    def _get_text_embedding(self, text: str) -> list[float]:
        return keyword_vector(text, self.dim)

    async def _aget_text_embedding(self, text: str) -> list[float]:
        return keyword_vector(text, self.dim)

    def _get_query_embedding(self, query: str) -> list[float]:
        return keyword_vector(query, self.dim)

    async def _aget_query_embedding(self, query: str) -> list[float]:
        return keyword_vector(query, self.dim)


@pytest.fixture
def vectorize() -> Callable[[str], list[float]]:
    return keyword_vector


@pytest_asyncio.fixture
async def aclient_local():
    """In-memory embedded Qdrant for tests."""
    client = AsyncQdrantClient(location=":memory:")
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture
def test_settings() -> Settings:
    # Embedded Qdrant, small vectors, no retry back-off
    return Settings(
        qdrant_url="http://unused-in-local-mode",
        qdrant_api_key=None,
        qdrant_local_mode=True,
        qdrant_collection_prefix="test-embeddings",
        openai_api_key=None,
        embedding_dimension=TEST_DIMENSION,
        worker_retry_delay=0.0,
    )


@pytest.fixture
def embed_model() -> KeywordEmbedding:
    return KeywordEmbedding(model_name="keyword-test")


@pytest.fixture(scope="session")
def sparse_encoder() -> SparseEncoder:
    # Loaded once per test run
    return SparseEncoder("Qdrant/bm25")


@pytest_asyncio.fixture
async def qdrant_service(aclient_local: AsyncQdrantClient, test_settings: Settings):
    svc = QdrantService(settings=test_settings, aclient=aclient_local)
    await svc.ensure_collection(TEST_DIMENSION)
    yield svc


@pytest_asyncio.fixture
async def services(
    aclient_local: AsyncQdrantClient,
    test_settings: Settings,
    embed_model: KeywordEmbedding,
    sparse_encoder: SparseEncoder,
):
    svc: Services = build_services(
        test_settings,
        aclient=aclient_local,
        embed_model=embed_model,
        sparse_encoder=sparse_encoder,
    )
    yield svc
    await svc.dispatcher.drain()
