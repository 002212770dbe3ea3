"""Search request and response schemas."""

from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from rag_memory.core.models import Document, NamedFilter


class ChunkContext(BaseModel):
    """Neighbouring chunks to splice around each match."""

    before: int = Field(0, description="Chunks of context before each match", ge=0)
    after: int = Field(0, description="Chunks of context after each match", ge=0)


class SearchFilter(BaseModel):
    """Equality filter addressed by the namespace's filter name."""

    name: str = Field(..., description="Filter name from the namespace schema", min_length=1)
    value: Any = Field(..., description="Value the chunk's filter must equal")

    def to_named(self) -> NamedFilter:
        return NamedFilter(name=self.name, value=self.value)


class SearchRequest(BaseModel):
    """Vector, text or hybrid search over one namespace."""

    namespace: str = Field(..., description="Logical namespace name", min_length=1)
    model_id: str = Field(..., description="Embedding model the query vector came from", min_length=1)
    embedding: list[float] | None = Field(None, description="Query embedding")
    dimension: int | None = Field(
        None, description="Embedding dimension; required when no embedding is given", gt=0
    )
    text_query: str | None = Field(None, description="Full-text query; enables the hybrid path")
    filters: list[SearchFilter] = Field(
        default_factory=list, description="Filters OR'd together; empty means no filtering"
    )
    limit: int = Field(10, description="Maximum number of results", ge=0)
    vector_score_threshold: float | None = Field(
        None, description="Drop vector hits scoring below this", ge=-1.0, le=1.0
    )
    vector_weight: float = Field(1.0, description="RRF weight of the vector list", ge=0.0)
    text_weight: float = Field(1.0, description="RRF weight of the text list", ge=0.0)
    rrf_k: float | None = Field(None, description="RRF damping constant override", gt=0.0)
    chunk_context: ChunkContext = Field(default_factory=ChunkContext)

    @model_validator(mode="after")
    def _check_query(self) -> Self:
        if self.embedding is None and not self.text_query:
            raise ValueError("Either embedding or text_query is required")
        if self.embedding is None and self.dimension is None:
            raise ValueError("dimension is required when no embedding is given")
        if self.embedding is not None:
            if not self.embedding:
                raise ValueError("embedding must not be empty")
            if self.dimension is not None and self.dimension != len(self.embedding):
                raise ValueError(
                    f"dimension {self.dimension} does not match embedding length {len(self.embedding)}"
                )
        return self

    @property
    def query_dimension(self) -> int:
        if self.embedding is not None:
            return len(self.embedding)
        assert self.dimension is not None
        return self.dimension


class ContentItem(BaseModel):
    """Text of one chunk inside a result range."""

    text: str
    metadata: dict[str, Any] | None = None


class SearchResult(BaseModel):
    """A scored chunk with its context window."""

    document_id: str = Field(..., description="Document the chunk belongs to")
    order: int = Field(..., description="Order of the matched chunk")
    start_order: int = Field(..., description="Order of the first chunk in content")
    content: list[ContentItem] = Field(..., description="Contiguous chunk texts")
    score: float = Field(..., description="Similarity (vector path) or position score (hybrid)")

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.content)


class FilterValue(BaseModel):
    name: str
    value: Any


class Entry(BaseModel):
    """Public projection of a document referenced by results."""

    document_id: str
    key: str
    version: int
    title: str | None = None
    importance: float
    content_hash: str | None = None
    mime_type: str
    metadata: dict[str, Any] | None = None
    filter_values: list[FilterValue] = Field(default_factory=list)
    status: str

    @classmethod
    def from_document(cls, document: Document) -> "Entry":
        return cls(
            document_id=document.id,
            key=document.key,
            version=document.version,
            title=document.title,
            importance=document.importance,
            content_hash=document.content_hash,
            mime_type=document.mime_type,
            metadata=document.metadata,
            filter_values=[FilterValue(name=f.name, value=f.value) for f in document.filter_values],
            status=document.status,
        )


class SearchResponse(BaseModel):
    """Ranked results plus the documents they came from."""

    results: list[SearchResult] = Field(default_factory=list)
    entries: list[Entry] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """All result texts, most relevant first."""
        return "\n\n".join(result.text for result in self.results)
