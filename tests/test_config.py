"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from rag_memory.config import Settings, get_settings
from rag_memory.text_processing.chunker import ChunkerOptions


def test_settings_defaults():
    """Test that settings have correct default values."""
    settings = Settings()
    assert settings.sparse_model == "Qdrant/bm25"
    assert settings.qdrant_collection_prefix == "embeddings"
    assert settings.rrf_k == 10.0
    assert settings.strict_filters is False


def test_get_settings_returns_singleton():
    """Test that get_settings returns the same instance."""
    settings1 = get_settings()
    settings2 = get_settings()
    assert settings1 is settings2


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch):
    """Test that environment variables override defaults."""
    monkeypatch.setenv("RRF_K", "25")
    monkeypatch.setenv("STRICT_FILTERS", "true")
    monkeypatch.setenv("CHUNK_MAX_CHARS_HARD_LIMIT", "4000")

    settings = Settings()

    assert settings.rrf_k == 25.0
    assert settings.strict_filters is True
    assert settings.chunk_max_chars_hard_limit == 4000


def test_settings_are_frozen():
    """Test that settings cannot be mutated after load."""
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.rrf_k = 1.0  # type: ignore[misc]


def test_chunker_options_from_settings():
    """Test that chunker options mirror the chunk_* settings."""
    settings = Settings(chunk_min_lines=2, chunk_max_chars_soft_limit=900, chunk_delimiter="\n---\n")

    options = ChunkerOptions.from_settings(settings)

    assert options == ChunkerOptions(
        min_lines=2, max_chars_soft_limit=900, delimiter="\n---\n"
    )
