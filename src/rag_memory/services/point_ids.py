"""Deterministic Qdrant point IDs."""

import uuid
from typing import Final

_POINT_ID_NAMESPACE: Final[uuid.UUID] = uuid.UUID("6f1c2a9e-3b4d-5e8f-9a0b-1c2d3e4f5a6b")


def generate_point_id(point_type: str, *parts: object) -> str:
    """Return a UUIDv5 derived from the point type and identifying parts."""
    name = ":".join([point_type, *(str(part) for part in parts)])
    return str(uuid.uuid5(_POINT_ID_NAMESPACE, name))


def vector_point_id(chunk_id: str) -> str:
    """Point ID of the vector entry backing a chunk.

    Re-indexing the same chunk overwrites its point instead of duplicating it.
    """
    return generate_point_id("chunk", chunk_id)
