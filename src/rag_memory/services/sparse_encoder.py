"""BM25 sparse encoding of chunk text and text queries via fastembed."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Sequence
from typing import Any

from rag_memory.core.constants import DEFAULT_SPARSE_MODEL
from rag_memory.core.logging import get_logger
from rag_memory.core.models import SparseVector

logger = get_logger(__name__)


def _to_sparse(embedding: Any) -> SparseVector:
    return SparseVector(
        indices=[int(i) for i in embedding.indices.tolist()],
        values=[float(v) for v in embedding.values.tolist()],
    )


class SparseEncoder:
    """Encodes text into term-frequency sparse vectors.

    Document vectors carry BM25 term weights; the collection applies IDF at
    query time, so scores adapt as the corpus grows.
    """

    def __init__(self, model_name: str = DEFAULT_SPARSE_MODEL):
        self.model_name = model_name
        self._model: Any | None = None
        self._lock = threading.Lock()

    def _ensure_model(self) -> Any:
        """Lazy-load the fastembed model on first use."""
        with self._lock:
            if self._model is None:
                from fastembed import SparseTextEmbedding

                start = time.monotonic()
                self._model = SparseTextEmbedding(model_name=self.model_name)
                logger.info(
                    "Loaded sparse model '%s' in %.2fs", self.model_name, time.monotonic() - start
                )
            return self._model

    def _encode_documents(self, texts: list[str]) -> list[SparseVector]:
        model = self._ensure_model()
        return [_to_sparse(embedding) for embedding in model.embed(texts)]

    def _encode_query(self, text: str) -> SparseVector:
        model = self._ensure_model()
        return _to_sparse(next(iter(model.query_embed(text))))

    async def encode_documents(self, texts: Sequence[str]) -> list[SparseVector]:
        """Sparse vectors for indexed text, one per input."""
        if not texts:
            return []
        return await asyncio.to_thread(self._encode_documents, list(texts))

    async def encode_query(self, text: str) -> SparseVector:
        """Sparse vector for a search query; empty when no term survives tokenizing."""
        return await asyncio.to_thread(self._encode_query, text)


__all__ = ["SparseEncoder"]
