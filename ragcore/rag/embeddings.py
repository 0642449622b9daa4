from __future__ import annotations

"""Embedding providers and configuration validation."""

import hashlib
import logging
import math
import random
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

import httpx

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_MAX_HASHED_WORDS = 50_000


class EmbeddingFailed(RuntimeError):
    """Raised when a provider cannot produce embeddings."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    async def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one embedding per text, in input order."""
        raise NotImplementedError


def validate_vector(vector: Sequence[Any], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingFailed(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingFailed("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingFailed("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


def load_word_vectors(path: Path | str) -> dict[str, tuple[float, ...]]:
    """Load a GloVe or word2vec text file into a word -> vector table."""
    table: dict[str, tuple[float, ...]] = {}
    dimension: int | None = None
    with Path(path).open(encoding="utf-8", errors="ignore") as handle:
        for line_no, line in enumerate(handle):
            parts = line.rstrip().split(" ")
            if line_no == 0 and len(parts) == 2 and all(part.isdigit() for part in parts):
                continue
            if len(parts) < 2:
                continue
            try:
                values = tuple(float(part) for part in parts[1:])
            except ValueError:
                continue
            if dimension is None:
                dimension = len(values)
            elif len(values) != dimension:
                raise EmbeddingConfigError(
                    f"Inconsistent vector length on line {line_no + 1} of {path}"
                )
            table[parts[0].lower()] = values
    if not table:
        raise EmbeddingConfigError(f"No word vectors found in {path}")
    return table


@dataclass
class LocalEmbedder:
    """Offline embedder that average-pools per-word vectors.

    With a ``word_vectors`` table the vocabulary is fixed and unknown words
    contribute nothing. Without one, every word maps to a deterministic
    pseudo-random unit vector seeded from its SHA-256 digest.
    """
    dimension: int = 256
    word_vectors: Mapping[str, Sequence[float]] | None = None
    _hashed: dict[str, tuple[float, ...]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate the dimension against the vocabulary table."""
        if self.word_vectors:
            first = next(iter(self.word_vectors.values()))
            if self.dimension <= 0:
                self.dimension = len(first)
            for word, vector in self.word_vectors.items():
                if len(vector) != self.dimension:
                    raise EmbeddingConfigError(
                        f"Word vector for {word!r} has {len(vector)} values, expected {self.dimension}"
                    )
        if self.dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be greater than zero")

    @classmethod
    def from_file(cls, path: Path | str) -> LocalEmbedder:
        table = load_word_vectors(path)
        first = next(iter(table.values()))
        return cls(dimension=len(first), word_vectors=table)

    async def embed(self, text: str) -> list[float]:
        return self.embed_text(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed_text(text) for text in texts]

    def embed_text(self, text: str) -> list[float]:
        """Average the vectors of every known word in the text."""
        pooled = [0.0] * self.dimension
        count = 0
        for token in _TOKEN_RE.findall(text.lower()):
            vector = self._word_vector(token)
            if vector is None:
                continue
            for idx, value in enumerate(vector):
                pooled[idx] += value
            count += 1
        if count == 0:
            return pooled
        return validate_vector([value / count for value in pooled], self.dimension)

    def _word_vector(self, word: str) -> Sequence[float] | None:
        if self.word_vectors is not None:
            return self.word_vectors.get(word)
        cached = self._hashed.get(word)
        if cached is not None:
            return cached
        if len(self._hashed) >= _MAX_HASHED_WORDS:
            self._hashed.clear()
        digest = hashlib.sha256(word.encode("utf-8")).digest()
        rng = random.Random(int.from_bytes(digest[:8], "big"))
        raw = [rng.gauss(0.0, 1.0) for _ in range(self.dimension)]
        norm = math.sqrt(sum(value * value for value in raw)) or 1.0
        vector = tuple(value / norm for value in raw)
        self._hashed[word] = vector
        return vector


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding model."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model)


@dataclass(frozen=True)
class EmbeddingConfigReport:
    """Validation report for embedding configuration."""
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None


def build_embedding_config_report(
    provider: str, model: str | None, dimension: int
) -> EmbeddingConfigReport:
    """Build a validation report for embedding settings."""
    normalized = provider.lower().strip()

    if normalized in {"", "local"}:
        if dimension <= 0:
            return EmbeddingConfigReport(
                provider="local",
                model=None,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=False,
                status="error",
                detail="EMBEDDING_DIMENSION must be greater than zero for local embeddings.",
                action="Set EMBEDDING_DIMENSION to a positive integer.",
            )
        return EmbeddingConfigReport(
            provider="local",
            model=None,
            configured_dimension=dimension,
            expected_dimension=dimension,
            ok=True,
            status="ok",
        )

    if normalized == "openai":
        if not model:
            return EmbeddingConfigReport(
                provider="openai",
                model=None,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=False,
                status="error",
                detail="OPENAI_EMBEDDING_MODEL is required for OpenAI embeddings.",
                action="Set OPENAI_EMBEDDING_MODEL in .env.",
            )
        expected = resolve_openai_dimension(model)
        if expected is None:
            if dimension <= 0:
                return EmbeddingConfigReport(
                    provider="openai",
                    model=model,
                    configured_dimension=dimension,
                    expected_dimension=None,
                    ok=False,
                    status="error",
                    detail="EMBEDDING_DIMENSION must be set for the configured model.",
                    action="Set EMBEDDING_DIMENSION based on the model documentation.",
                )
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=True,
                status="warning",
                detail="Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
            )
        if dimension > 0 and dimension != expected:
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=expected,
                ok=False,
                status="error",
                detail="EMBEDDING_DIMENSION does not match the OpenAI model dimension.",
                action=f"Set EMBEDDING_DIMENSION to {expected}.",
            )
        return EmbeddingConfigReport(
            provider="openai",
            model=model,
            configured_dimension=dimension,
            expected_dimension=expected,
            ok=True,
            status="ok",
        )

    return EmbeddingConfigReport(
        provider=normalized,
        model=model,
        configured_dimension=dimension,
        expected_dimension=None,
        ok=False,
        status="error",
        detail="Unsupported embedding provider.",
        action="Set EMBEDDING_PROVIDER to local or openai.",
    )


@dataclass
class OpenAIEmbedder:
    """Embedding provider for OpenAI-compatible ``/embeddings`` endpoints."""
    api_key: str
    model: str
    dimension: int = 0
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 30.0
    client: httpx.AsyncClient | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate OpenAI configuration and resolve the dimension."""
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAIEmbedder")
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAIEmbedder")
        resolved = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for OpenAI embeddings when model is unknown"
                )
            self.dimension = resolved
        elif resolved is not None and self.dimension != resolved:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {resolved} for model {self.model}"
            )

    async def embed(self, text: str) -> list[float]:
        """Embed a single text through the batch endpoint."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed all texts with one request, ordered by the response index."""
        if not texts:
            return []
        payload = {"model": self.model, "input": list(texts)}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        owns_client = self.client is None
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(
                f"{self.base_url.rstrip('/')}/embeddings",
                json=payload,
                headers=headers,
            )
            if not response.is_success:
                logger.warning(
                    "embedding_request_failed",
                    extra={"status": response.status_code, "model": self.model},
                )
                raise EmbeddingFailed(
                    f"Embedding request failed with status {response.status_code}"
                )
            data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingFailed(str(exc)) from exc
        except ValueError as exc:
            raise EmbeddingFailed("Embedding response is not valid JSON") from exc
        finally:
            if owns_client:
                await client.aclose()
        return self._parse_response(data, expected=len(texts))

    def _parse_response(self, data: Any, expected: int) -> list[list[float]]:
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise EmbeddingFailed("Embedding response missing data list")
        rows: list[tuple[int, Any]] = []
        for item in items:
            if not isinstance(item, dict):
                raise EmbeddingFailed("Embedding response item is not an object")
            index = item.get("index")
            embedding = item.get("embedding")
            if isinstance(index, bool) or not isinstance(index, int) or not isinstance(embedding, list):
                raise EmbeddingFailed("Embedding response item missing index or embedding")
            rows.append((index, embedding))
        if len(rows) != expected:
            raise EmbeddingFailed(
                f"Embedding response returned {len(rows)} vectors for {expected} inputs"
            )
        rows.sort(key=lambda row: row[0])
        if [index for index, _ in rows] != list(range(expected)):
            raise EmbeddingFailed("Embedding response indices do not cover the inputs")
        return [validate_vector(embedding, self.dimension) for _, embedding in rows]
