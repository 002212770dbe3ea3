"""Helpers to translate between domain models and Qdrant transport objects."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, cast

from qdrant_client import models as q

from rag_memory.core.constants import (
    DENSE_VEC,
    FILTER_FIELD_NAMES,
    K_CHUNK_ID,
    K_DOCUMENT_ID,
    K_NAMESPACE_ID,
    K_ORDER,
    K_SEARCHABLE_TEXT,
    SPARSE_VEC,
)
from rag_memory.core.models import SparseVector, VectorEntry, VectorHit


def entry_to_point(entry: VectorEntry) -> q.PointStruct:
    """Convert a vector entry (dense + sparse) into a Qdrant point."""
    if entry.embedding is None:
        raise ValueError(f"Vector entry {entry.id} has no embedding")
    payload: dict[str, Any] = {
        K_NAMESPACE_ID: entry.namespace_id,
        K_DOCUMENT_ID: entry.document_id,
        K_CHUNK_ID: entry.chunk_id,
        K_ORDER: entry.order,
        K_SEARCHABLE_TEXT: entry.searchable_text,
        **entry.filters,
    }
    vectors: q.VectorStruct = {DENSE_VEC: list(entry.embedding)}
    if entry.sparse_embedding is not None:
        vectors[SPARSE_VEC] = q.SparseVector(
            indices=entry.sparse_embedding.indices,
            values=entry.sparse_embedding.values,
        )

    return q.PointStruct(id=entry.id, vector=vectors, payload=payload)


def record_to_entry(record: q.Record | q.ScoredPoint) -> VectorEntry:
    """Convert a Qdrant record into a vector entry."""
    payload = record.payload or {}
    return VectorEntry(
        id=_stringify_point_id(record.id),
        namespace_id=cast(str | None, payload.get(K_NAMESPACE_ID)) or "",
        document_id=cast(str | None, payload.get(K_DOCUMENT_ID)) or "",
        chunk_id=cast(str | None, payload.get(K_CHUNK_ID)) or "",
        order=_coerce_int(payload.get(K_ORDER)) or 0,
        searchable_text=cast(str | None, payload.get(K_SEARCHABLE_TEXT)) or "",
        embedding=_extract_named_vector(record.vector, DENSE_VEC),
        sparse_embedding=_extract_sparse_vector(record.vector, SPARSE_VEC),
        filters={
            name: cast(str, payload[name])
            for name in FILTER_FIELD_NAMES
            if isinstance(payload.get(name), str)
        },
    )


def scored_point_to_hit(point: q.ScoredPoint) -> VectorHit:
    """Convert a scored query result into a vector hit."""
    payload = point.payload or {}
    return VectorHit(
        vector_id=_stringify_point_id(point.id),
        chunk_id=cast(str | None, payload.get(K_CHUNK_ID)) or "",
        score=float(point.score),
    )


def _extract_named_vector(
    vector: q.VectorStructOutput | None,
    name: str,
) -> list[float] | None:
    if vector is None:
        return None

    if isinstance(vector, Mapping):
        value = vector.get(name)
        if value is None:
            return None
        if isinstance(value, list) and all(isinstance(x, (int, float)) for x in value):
            return [float(x) for x in value]  # pyright: ignore[reportUnknownArgumentType, reportUnknownVariableType]
        raise ValueError(f"Expected vector to be a list, got {type(value)}")

    raise ValueError(f"Expected vector to be a mapping, got {type(vector)}")


def _extract_sparse_vector(
    vector: q.VectorStructOutput | None,
    name: str,
) -> SparseVector | None:
    if vector is None:
        return None

    if isinstance(vector, Mapping):
        value = vector.get(name)
        if value is None:
            return None
        if isinstance(value, q.SparseVector):
            return SparseVector(indices=list(value.indices), values=list(value.values))
        raise ValueError(f"Expected vector to be a sparse vector, got {type(value)}")

    raise ValueError(f"Expected vector to be a mapping, got {type(vector)}")


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _stringify_point_id(value: Any) -> str:
    return str(value)
