from __future__ import annotations

"""Memoizing embedding service with batch de-duplication."""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ragcore.app.metrics import record_cache_lookup
from ragcore.rag.embeddings import EmbeddingFailed, EmbeddingProvider
from ragcore.rag.similarity import cosine_similarity, top_k_similar

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingService:
    """Wrap an embedding provider with a bounded exact-text cache.

    When the cache holds ``cache_limit`` entries it is flushed entirely before
    the next insert. Cache updates happen after the provider call returns, so
    a failed call never leaves a partial entry behind.
    """
    provider: EmbeddingProvider
    cache_limit: int = 10_000
    _cache: dict[str, list[float]] = field(default_factory=dict, init=False, repr=False)

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def embed(self, text: str) -> list[float]:
        """Return the cached vector for the text or compute it once."""
        cached = self._cache.get(text)
        if cached is not None:
            record_cache_lookup(hits=1, misses=0)
            return list(cached)
        record_cache_lookup(hits=0, misses=1)
        vector = await self.provider.embed(text)
        self._remember(text, vector)
        return list(vector)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in order, sending only uncached unique texts to the provider."""
        results: list[list[float] | None] = [None] * len(texts)
        pending: dict[str, list[int]] = {}
        for idx, text in enumerate(texts):
            cached = self._cache.get(text)
            if cached is not None:
                results[idx] = list(cached)
            else:
                pending.setdefault(text, []).append(idx)

        record_cache_lookup(hits=len(texts) - sum(len(v) for v in pending.values()), misses=len(pending))
        if pending:
            uncached = list(pending)
            vectors = await self.provider.embed_batch(uncached)
            if len(vectors) != len(uncached):
                raise EmbeddingFailed(
                    f"Provider returned {len(vectors)} vectors for {len(uncached)} texts"
                )
            for text, vector in zip(uncached, vectors):
                self._remember(text, vector)
                for idx in pending[text]:
                    results[idx] = list(vector)
            logger.debug(
                "embedding_batch_complete",
                extra={"requested": len(texts), "computed": len(uncached)},
            )
        return [vector for vector in results if vector is not None]

    def similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    def find_similar(
        self,
        query: Sequence[float],
        candidates: Sequence[Sequence[float]],
        top_k: int,
    ) -> list[tuple[int, float]]:
        return top_k_similar(query, candidates, top_k)

    def _remember(self, text: str, vector: Sequence[float]) -> None:
        if self.cache_limit <= 0:
            return
        if text in self._cache:
            self._cache[text] = list(vector)
            return
        if len(self._cache) >= self.cache_limit:
            logger.info("embedding_cache_flushed", extra={"entries": len(self._cache)})
            self._cache.clear()
        self._cache[text] = list(vector)
