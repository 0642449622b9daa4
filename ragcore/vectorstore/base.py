from __future__ import annotations

"""Vector store protocol and store-level errors."""

from typing import Protocol, Sequence

from ragcore.rag.types import RetrievalFilter, SearchResult, VectorEntry, VectorStoreStats


class DimensionMismatch(ValueError):
    """Raised when an entry's dimension differs from the store's."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: store has {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class VectorStore(Protocol):
    """Protocol for chunk vector stores with a lexical index."""

    def insert(self, entry: VectorEntry) -> None:
        raise NotImplementedError

    def insert_batch(self, entries: Sequence[VectorEntry]) -> int:
        raise NotImplementedError

    def replace_document(self, document_id: str, entries: Sequence[VectorEntry]) -> int:
        """Atomically drop a document's entries and insert the new ones."""
        raise NotImplementedError

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        filter: RetrievalFilter | None = None,
    ) -> list[SearchResult]:
        raise NotImplementedError

    def keyword_search(self, terms: Sequence[str], top_k: int) -> list[SearchResult]:
        raise NotImplementedError

    def remove(self, document_id: str) -> int:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def stats(self) -> VectorStoreStats:
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError
