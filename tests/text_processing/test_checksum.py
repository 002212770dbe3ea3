"""Tests for content hash helpers."""

from rag_memory.text_processing.checksum import compute_content_hash
from rag_memory.text_processing.chunker import ChunkerOptions


def test_content_hash_is_stable() -> None:
    assert compute_content_hash("Hello world") == compute_content_hash("Hello world")
    assert len(compute_content_hash("Hello world")) == 64


def test_content_hash_differs_for_unique_content() -> None:
    first = compute_content_hash("First document")
    second = compute_content_hash("Second document")
    assert first != second


def test_content_hash_is_not_normalized() -> None:
    """Whitespace changes alter chunk text, so they must alter the hash."""
    assert compute_content_hash("Hello  world") != compute_content_hash("Hello world")


def test_content_hash_includes_chunking_strategy() -> None:
    text = "Same text, different chunking."
    default = compute_content_hash(text)
    assert compute_content_hash(text, ChunkerOptions()) == default
    assert compute_content_hash(text, ChunkerOptions(max_chars_soft_limit=500)) != default
