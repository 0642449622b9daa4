from __future__ import annotations

"""Core data types for documents, chunks and retrieval."""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


class InvalidFilter(ValueError):
    """Raised when a retrieval filter combination is not supported."""
    pass


class ContentType(str, Enum):
    """Kind of content a document holds; drives the chunking policy."""
    CODE = "code"
    DOCUMENTATION = "documentation"
    MARKDOWN = "markdown"
    TEXT = "text"
    CONFIG = "config"


@dataclass(frozen=True)
class DocumentMetadata:
    """Source metadata carried by documents and their chunks."""
    source: str
    content_type: ContentType = ContentType.TEXT
    language: str | None = None
    title: str | None = None
    chunk_index: int | None = None

    def with_chunk_index(self, index: int) -> DocumentMetadata:
        """Return a copy tagged with the chunk position."""
        return replace(self, chunk_index=index)


@dataclass(frozen=True)
class Document:
    """Caller-supplied unit of content."""
    doc_id: str
    content: str
    metadata: DocumentMetadata


@dataclass(frozen=True)
class Chunk:
    """Retrievable sub-span of a document."""
    text: str
    metadata: DocumentMetadata


@dataclass(frozen=True)
class VectorEntry:
    """Chunk vector as held by a vector store."""
    entry_id: str
    document_id: str
    text: str
    embedding: tuple[float, ...]
    metadata: DocumentMetadata

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class SearchResult:
    """Store-level search hit with its score."""
    entry_id: str
    document_id: str
    text: str
    metadata: DocumentMetadata
    score: float


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked content returned to callers of the engine."""
    id: str
    content: str
    metadata: DocumentMetadata
    score: float | None = None
    chunk_id: str | None = None

    @classmethod
    def from_search(cls, result: SearchResult) -> RetrievalResult:
        return cls(
            id=result.document_id,
            content=result.text,
            metadata=result.metadata,
            score=result.score,
            chunk_id=result.entry_id,
        )

    def with_score(self, score: float) -> RetrievalResult:
        return replace(self, score=score)


@dataclass(frozen=True)
class RetrievalFilter:
    """Exact-match metadata filter applied during similarity search."""
    source: str | None = None
    content_type: ContentType | None = None
    language: str | None = None
    min_score: float | None = None

    def __post_init__(self) -> None:
        """Coerce the content type and reject unsupported values eagerly."""
        if self.content_type is not None and not isinstance(self.content_type, ContentType):
            try:
                coerced = ContentType(str(self.content_type).lower())
            except ValueError as exc:
                raise InvalidFilter(f"Unknown content type: {self.content_type}") from exc
            object.__setattr__(self, "content_type", coerced)
        if self.min_score is not None:
            if not isinstance(self.min_score, (int, float)) or not math.isfinite(self.min_score):
                raise InvalidFilter("min_score must be a finite number")
            if not -1.0 <= self.min_score <= 1.0:
                raise InvalidFilter("min_score must be between -1 and 1")

    def matches(self, metadata: DocumentMetadata) -> bool:
        """Check metadata against every configured constraint."""
        if self.source is not None and metadata.source != self.source:
            return False
        if self.content_type is not None and metadata.content_type != self.content_type:
            return False
        if self.language is not None and metadata.language != self.language:
            return False
        return True


@dataclass(frozen=True)
class IndexedDocument:
    """Manifest row for an indexed document."""
    document_id: str
    chunk_count: int
    indexed_at: datetime


@dataclass(frozen=True)
class VectorStoreStats:
    vector_count: int
    memory_usage: int
    dimensions: int


@dataclass(frozen=True)
class EngineStats:
    document_count: int
    chunk_count: int
    index_size: int


@dataclass
class IngestReport:
    """Outcome of a batch or directory ingest."""
    document_ids: list[str] = field(default_factory=list)
    chunk_count: int = 0
    skipped: int = 0
    cancelled: bool = False

    @property
    def document_count(self) -> int:
        return len(self.document_ids)
