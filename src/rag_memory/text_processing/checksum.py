"""Content hash helpers for document dedup and chunk content addressing."""

import hashlib
import json
from typing import Any

from rag_memory.core.logging import get_logger

from .chunker import ChunkerOptions

logger = get_logger(__name__)


def compute_content_hash(text: str, options: ChunkerOptions | None = None) -> str:
    """Compute the SHA256 content hash of a document.

    The chunking strategy is folded in, so unchanged text chunked with
    different options hashes differently and is re-ingested.

    Args:
        text: Raw document text (hashed as is, no normalization).
        options: Chunker options the text will be split with.

    Returns:
        Hex string representation of the SHA256 hash.
    """
    fingerprint = (options or ChunkerOptions()).fingerprint()
    digest = hashlib.sha256()
    digest.update(text.encode("utf-8"))
    digest.update(b"\0")
    digest.update(fingerprint.encode("utf-8"))
    content_hash = digest.hexdigest()
    logger.debug("Computed content hash %s… for %d-char input", content_hash[:8], len(text))
    return content_hash


def compute_chunk_content_id(text: str, metadata: dict[str, Any] | None = None) -> str:
    """Content-addressed id of a chunk's text and metadata.

    Chunks with identical text and metadata share one content record.
    """
    digest = hashlib.sha256()
    digest.update(text.encode("utf-8"))
    digest.update(b"\0")
    digest.update(json.dumps(metadata, sort_keys=True, default=str).encode("utf-8"))
    return digest.hexdigest()
