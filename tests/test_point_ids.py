"""Tests for deterministic Qdrant point ID helpers."""

import uuid

from rag_memory.services.point_ids import generate_point_id, vector_point_id


def test_generate_point_id_deterministic() -> None:
    """Same inputs should produce identical UUIDs."""
    assert generate_point_id("chunk", "abc", 1) == generate_point_id("chunk", "abc", 1)


def test_generate_point_id_varies_with_inputs() -> None:
    """Changing any component should produce a different UUID."""
    base = generate_point_id("chunk", "abc")
    assert base != generate_point_id("chunk", "abd")
    assert base != generate_point_id("chunk", "abc", "extra")
    # Different point type even with same identifiers must differ
    assert base != generate_point_id("document", "abc")


def test_vector_point_id_is_a_uuid() -> None:
    point_id = vector_point_id("chunk-1")
    assert str(uuid.UUID(point_id)) == point_id
    assert point_id == vector_point_id("chunk-1")
    assert point_id != vector_point_id("chunk-2")
