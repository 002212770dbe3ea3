"""Central constants shared across the ingestion/search stack."""

from typing import Final

# Embedding dimensions with a dedicated vector table (Qdrant collection).
VECTOR_DIMENSIONS: Final[tuple[int, ...]] = (
    128,
    256,
    512,
    768,
    1024,
    1408,
    1536,
    2048,
    3072,
    4096,
)

# Positional filter slots available to a namespace's filter schema.
MAX_FILTERS: Final[int] = 4
FILTER_FIELD_NAMES: Final[tuple[str, ...]] = tuple(f"filter{i}" for i in range(MAX_FILTERS))

# Status values.
STATUS_PENDING: Final[str] = "pending"
STATUS_READY: Final[str] = "ready"
STATUS_REPLACED: Final[str] = "replaced"

# Named vectors stored on every vector table point.
DENSE_VEC: Final[str] = "dense"
SPARSE_VEC: Final[str] = "text-sparse"
DEFAULT_SPARSE_MODEL: Final[str] = "Qdrant/bm25"

# Vector table payload keys.
K_NAMESPACE_ID: Final[str] = "namespace_id"
K_DOCUMENT_ID: Final[str] = "document_id"
K_CHUNK_ID: Final[str] = "chunk_id"
K_ORDER: Final[str] = "order"
K_SEARCHABLE_TEXT: Final[str] = "searchable_text"

# Search defaults.
DEFAULT_RRF_K: Final[float] = 10.0
DEFAULT_VECTOR_SCORE_THRESHOLD: Final[float] = -1.0  # Cosine similarity lower bound

# Bounded scan when matching a content hash against recent document versions.
MAX_CONTENT_HASH_ATTEMPTS: Final[int] = 20
