"""Domain models for namespaces, documents, chunks and their content."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

NamespaceStatus = Literal["pending", "ready"]
DocumentStatus = Literal["pending", "ready", "replaced"]

T = TypeVar("T")


@dataclass(frozen=True)
class NamedFilter:
    """A filter value addressed by its schema name."""

    name: str
    value: Any


@dataclass(frozen=True)
class NumberedFilter:
    """A filter value addressed by its positional slot in the namespace schema."""

    index: int
    value: Any


@dataclass(frozen=True)
class Namespace:
    """One immutable generation of a logical retrieval collection."""

    id: str
    name: str
    version: int
    model_id: str
    dimension: int
    filter_names: tuple[str, ...]
    status: NamespaceStatus
    created_at: float


@dataclass(frozen=True)
class StorageSource:
    """Document contents live in blob storage."""

    storage_id: str
    kind: Literal["storage"] = "storage"


@dataclass(frozen=True)
class InlineSource:
    """Document contents were supplied inline with the ingest request."""

    kind: Literal["inline"] = "inline"


@dataclass(frozen=True)
class UrlSource:
    """Document contents were fetched from a URL."""

    url: str
    kind: Literal["url"] = "url"


Source = StorageSource | InlineSource | UrlSource


@dataclass(frozen=True)
class Document:
    """A versioned document within a namespace generation."""

    id: str
    namespace_id: str
    key: str
    version: int
    source: Source
    status: DocumentStatus
    created_at: float
    importance: float = 1.0
    content_hash: str | None = None
    mime_type: str = "text/plain"
    title: str | None = None
    metadata: dict[str, Any] | None = None
    filter_values: tuple[NamedFilter, ...] = ()


@dataclass(frozen=True)
class Content:
    """Chunk text, stored apart from the chunk record."""

    id: str
    text: str
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class PendingChunkState:
    """Chunk written but not yet durably indexed."""

    embedding: tuple[float, ...]
    filters: tuple[NumberedFilter, ...] = ()
    kind: Literal["pending"] = "pending"


@dataclass(frozen=True)
class ReadyChunkState:
    """Chunk whose vector lives in the vector table under ``vector_id``."""

    vector_id: str
    searchable_text: str
    kind: Literal["ready"] = "ready"


ChunkState = PendingChunkState | ReadyChunkState


@dataclass(frozen=True)
class Chunk:
    """An ordered, independently embedded unit of document text."""

    id: str
    document_id: str
    namespace_id: str
    order: int
    content_id: str
    importance: float
    state: ChunkState


@dataclass(frozen=True)
class CreateChunk:
    """Chunk payload supplied by the chunking + embedding pipeline."""

    text: str
    embedding: list[float]
    metadata: dict[str, Any] | None = None
    importance: float | None = None


@dataclass(frozen=True)
class ChunkRange:
    """A matched chunk expanded with neighbouring chunk content."""

    document_id: str
    order: int
    start_order: int
    content: list[Content] = field(default_factory=list)


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a cursor-paginated listing."""

    items: list[T]
    continue_cursor: str | None
    is_done: bool


@dataclass(frozen=True)
class SparseVector:
    """Token weights keyed by vocabulary index."""

    indices: list[int]
    values: list[float]


@dataclass(frozen=True)
class VectorEntry:
    """A chunk's durable entry in its dimension's vector table."""

    id: str
    namespace_id: str
    document_id: str
    chunk_id: str
    order: int
    searchable_text: str
    embedding: list[float] | None = None
    sparse_embedding: SparseVector | None = None
    filters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorHit:
    """A vector table entry matched by a query, with its relevance score."""

    vector_id: str
    chunk_id: str
    score: float
