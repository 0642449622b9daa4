from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from ragcore.loaders.text import DEFAULT_INGEST_EXTENSIONS

load_dotenv()


@dataclass(frozen=True)
class Settings:
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "512"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "50"))
    chunk_unit: str = os.getenv("RAG_CHUNK_UNIT", "chars")
    chunk_encoding: str = os.getenv("RAG_CHUNK_ENCODING", "cl100k_base")
    embedding_cache_limit: int = int(os.getenv("RAG_EMBEDDING_CACHE_LIMIT", "10000"))
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "local")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    word_vectors_path: str | None = os.getenv("RAG_WORD_VECTORS_PATH")
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_embedding_model: str | None = os.getenv(
        "OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
    )
    embedding_timeout: float = float(os.getenv("RAG_EMBEDDING_TIMEOUT", "30"))
    default_top_k: int = int(os.getenv("RAG_DEFAULT_TOP_K", "5"))
    ingest_extensions_raw: str = os.getenv("RAG_INGEST_EXTENSIONS", "")
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    metrics_enabled: bool = os.getenv("RAG_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}

    @property
    def ingest_extensions(self) -> set[str]:
        raw = os.getenv("RAG_INGEST_EXTENSIONS", self.ingest_extensions_raw)
        if not raw.strip():
            return set(DEFAULT_INGEST_EXTENSIONS)
        return {
            value.strip().lower().lstrip(".")
            for value in raw.split(",")
            if value.strip().lstrip(".")
        }

    @property
    def metrics_active(self) -> bool:
        raw = os.getenv("RAG_METRICS_ENABLED")
        if raw is None:
            return self.metrics_enabled
        return raw.lower() in {"1", "true", "yes"}


settings = Settings()
