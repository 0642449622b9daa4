from __future__ import annotations

"""In-memory vector store with cosine search and an inverted keyword index."""

import logging
import threading
from typing import Iterable, Sequence

from ragcore.rag.similarity import cosine_similarity
from ragcore.rag.tokens import tokenize
from ragcore.rag.types import RetrievalFilter, SearchResult, VectorEntry, VectorStoreStats
from ragcore.vectorstore.base import DimensionMismatch

logger = logging.getLogger(__name__)

_FLOAT_SIZE = 4


class InMemoryVectorStore:
    """Vector store holding chunk entries and token postings keyed by entry id.

    Every read and write takes the same re-entrant lock, so callers never see
    a half-applied insert or removal. Writes validate their input before any
    state changes.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, VectorEntry] = {}
        self._index: dict[str, set[str]] = {}
        self._dimension: int | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def dimension(self) -> int:
        with self._lock:
            return self._dimension or 0

    def insert(self, entry: VectorEntry) -> None:
        self.insert_batch([entry])

    def insert_batch(self, entries: Sequence[VectorEntry]) -> int:
        """Insert entries after checking they all share the store dimension."""
        with self._lock:
            self._check_dimensions(entries, self._dimension)
            for entry in entries:
                self._add(entry)
            return len(entries)

    def replace_document(self, document_id: str, entries: Sequence[VectorEntry]) -> int:
        """Swap a document's entries in a single critical section."""
        with self._lock:
            existing = [e for e in self._entries.values() if e.document_id == document_id]
            expected = None if len(existing) == len(self._entries) else self._dimension
            self._check_dimensions(entries, expected)
            removed = self._remove_entries(existing)
            for entry in entries:
                self._add(entry)
            if removed:
                logger.debug(
                    "document_entries_replaced",
                    extra={"document_id": document_id, "removed": removed, "inserted": len(entries)},
                )
            return len(entries)

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        filter: RetrievalFilter | None = None,
    ) -> list[SearchResult]:
        """Rank entries passing the filter by cosine similarity to the query."""
        with self._lock:
            if not self._entries or top_k <= 0:
                return []
            if len(query_vector) != self._dimension:
                logger.warning(
                    "dimension_mismatch",
                    extra={"expected": self._dimension, "actual": len(query_vector)},
                )
            scored: list[tuple[VectorEntry, float]] = []
            for entry in self._entries.values():
                if filter is not None and not filter.matches(entry.metadata):
                    continue
                score = cosine_similarity(query_vector, entry.embedding)
                if filter is not None and filter.min_score is not None and score < filter.min_score:
                    continue
                scored.append((entry, score))
        scored.sort(key=lambda item: item[1], reverse=True)
        return [_to_result(entry, score) for entry, score in scored[:top_k]]

    def keyword_search(self, terms: Sequence[str], top_k: int) -> list[SearchResult]:
        """Rank entries by how many of the terms they contain."""
        terms = list(terms)
        if not terms or top_k <= 0:
            return []
        with self._lock:
            hits: dict[str, int] = {}
            for term in terms:
                for entry_id in self._index.get(term.lower(), ()):
                    hits[entry_id] = hits.get(entry_id, 0) + 1
            position = {entry_id: idx for idx, entry_id in enumerate(self._entries)}
            ranked = sorted(hits.items(), key=lambda item: (-item[1], position[item[0]]))
            return [
                _to_result(self._entries[entry_id], count / len(terms))
                for entry_id, count in ranked[:top_k]
            ]

    def remove(self, document_id: str) -> int:
        """Remove every entry of a document and its postings."""
        with self._lock:
            doomed = [e for e in self._entries.values() if e.document_id == document_id]
            return self._remove_entries(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._index.clear()
            self._dimension = None

    def stats(self) -> VectorStoreStats:
        """Return entry count, estimated vector memory and dimensionality."""
        with self._lock:
            count = len(self._entries)
            dimensions = self._dimension or 0
            return VectorStoreStats(
                vector_count=count,
                memory_usage=count * dimensions * _FLOAT_SIZE,
                dimensions=dimensions,
            )

    def _check_dimensions(self, entries: Iterable[VectorEntry], expected: int | None) -> None:
        for entry in entries:
            if expected is None:
                expected = entry.dimension
            elif entry.dimension != expected:
                raise DimensionMismatch(expected, entry.dimension)

    def _add(self, entry: VectorEntry) -> None:
        previous = self._entries.get(entry.entry_id)
        if previous is not None:
            self._remove_entries([previous])
        self._entries[entry.entry_id] = entry
        if self._dimension is None:
            self._dimension = entry.dimension
        for token in tokenize(entry.text):
            self._index.setdefault(token, set()).add(entry.entry_id)

    def _remove_entries(self, entries: Iterable[VectorEntry]) -> int:
        removed = 0
        for entry in entries:
            for token in tokenize(entry.text):
                postings = self._index.get(token)
                if postings is None:
                    continue
                postings.discard(entry.entry_id)
                if not postings:
                    del self._index[token]
            if self._entries.pop(entry.entry_id, None) is not None:
                removed += 1
        if not self._entries:
            self._dimension = None
        return removed


def _to_result(entry: VectorEntry, score: float) -> SearchResult:
    return SearchResult(
        entry_id=entry.entry_id,
        document_id=entry.document_id,
        text=entry.text,
        metadata=entry.metadata,
        score=score,
    )
