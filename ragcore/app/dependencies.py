from __future__ import annotations

from ragcore.app.settings import Settings, settings as default_settings
from ragcore.loaders.chunking import DocumentChunker, token_length_function
from ragcore.rag.cache import EmbeddingService
from ragcore.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingConfigReport,
    EmbeddingProvider,
    LocalEmbedder,
    OpenAIEmbedder,
    build_embedding_config_report,
)
from ragcore.rag.engine import RetrievalEngine
from ragcore.vectorstore.base import VectorStore
from ragcore.vectorstore.inmemory import InMemoryVectorStore


def get_embedding_config_report(config: Settings | None = None) -> EmbeddingConfigReport:
    config = config or default_settings
    provider = config.embedding_provider
    model = None
    if provider.lower().strip() == "openai":
        model = config.openai_embedding_model
    return build_embedding_config_report(provider, model, config.embedding_dimension)


def build_embedder(config: Settings | None = None) -> EmbeddingProvider:
    config = config or default_settings
    provider = config.embedding_provider.lower().strip()
    if provider == "local":
        if config.word_vectors_path:
            return LocalEmbedder.from_file(config.word_vectors_path)
        return LocalEmbedder(dimension=config.embedding_dimension)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=config.openai_api_key or "",
            model=config.openai_embedding_model or "",
            dimension=config.embedding_dimension,
            base_url=config.openai_base_url,
            timeout=config.embedding_timeout,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_embedding_service(
    config: Settings | None = None,
    provider: EmbeddingProvider | None = None,
) -> EmbeddingService:
    config = config or default_settings
    return EmbeddingService(
        provider=provider or build_embedder(config),
        cache_limit=config.embedding_cache_limit,
    )


def build_chunker(config: Settings | None = None) -> DocumentChunker:
    config = config or default_settings
    unit = config.chunk_unit.lower().strip()
    if unit == "tokens":
        return DocumentChunker(
            chunk_size=config.chunk_size,
            overlap=config.chunk_overlap,
            length_function=token_length_function(config.chunk_encoding),
        )
    if unit != "chars":
        raise ValueError(f"Unsupported chunk unit: {config.chunk_unit}")
    return DocumentChunker(chunk_size=config.chunk_size, overlap=config.chunk_overlap)


def build_vectorstore() -> VectorStore:
    return InMemoryVectorStore()


def build_engine(
    config: Settings | None = None,
    provider: EmbeddingProvider | None = None,
) -> RetrievalEngine:
    """Assemble a retrieval engine with freshly constructed collaborators."""
    config = config or default_settings
    return RetrievalEngine(
        chunker=build_chunker(config),
        embeddings=build_embedding_service(config, provider=provider),
        vectorstore=build_vectorstore(),
        default_top_k=config.default_top_k,
        ingest_extensions=frozenset(config.ingest_extensions),
    )
