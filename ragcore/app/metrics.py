from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from ragcore.app.settings import settings

EMBEDDING_CACHE_HITS = Counter(
    "ragcore_embedding_cache_hits_total",
    "Embedding lookups served from the cache",
)
EMBEDDING_CACHE_MISSES = Counter(
    "ragcore_embedding_cache_misses_total",
    "Embedding lookups that reached the provider",
)
DOCUMENTS_INDEXED = Counter(
    "ragcore_documents_indexed_total",
    "Documents indexed by the retrieval engine",
)
CHUNKS_INDEXED = Counter(
    "ragcore_chunks_indexed_total",
    "Chunks inserted into the vector store",
)
RETRIEVALS_DEGRADED = Counter(
    "ragcore_retrievals_degraded_total",
    "Retrievals answered with no results because embedding failed",
    ["operation"],
)
RETRIEVAL_LATENCY = Histogram(
    "ragcore_retrieval_duration_seconds",
    "Retrieval duration in seconds",
    ["operation"],
)


def record_cache_lookup(hits: int, misses: int) -> None:
    if not settings.metrics_active:
        return
    if hits:
        EMBEDDING_CACHE_HITS.inc(hits)
    if misses:
        EMBEDDING_CACHE_MISSES.inc(misses)


def record_indexed(chunk_count: int) -> None:
    if not settings.metrics_active:
        return
    DOCUMENTS_INDEXED.inc()
    if chunk_count:
        CHUNKS_INDEXED.inc(chunk_count)


def record_degraded(operation: str) -> None:
    if not settings.metrics_active:
        return
    RETRIEVALS_DEGRADED.labels(operation).inc()


def observe_retrieval(operation: str, duration: float) -> None:
    if not settings.metrics_active:
        return
    RETRIEVAL_LATENCY.labels(operation).observe(duration)


def metrics_payload() -> tuple[bytes, str]:
    """Render the Prometheus exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
