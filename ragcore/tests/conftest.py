from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["EMBEDDING_PROVIDER"] = "local"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("RAG_WORD_VECTORS_PATH", None)
os.environ.setdefault("RAG_CHUNK_UNIT", "chars")

from ragcore.rag.embeddings import EmbeddingFailed  # noqa: E402


@dataclass
class RecordingProvider:
    """Provider returning fixed vectors per text and recording every call."""
    vectors: dict[str, list[float]] = field(default_factory=dict)
    dimension: int = 2
    fail: bool = False
    calls: list[list[str]] = field(default_factory=list)

    async def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        if self.fail:
            raise EmbeddingFailed("provider unavailable")
        return self._vector(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingFailed("provider unavailable")
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        return [float(len(text))] + [1.0] * (self.dimension - 1)


@pytest.fixture
def recording_provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
