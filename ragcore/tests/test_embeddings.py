from __future__ import annotations

import json
import math

import httpx
import pytest

from ragcore.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingFailed,
    LocalEmbedder,
    OpenAIEmbedder,
    build_embedding_config_report,
    load_word_vectors,
    validate_vector,
)


def test_local_embedder_is_deterministic() -> None:
    first = LocalEmbedder(dimension=32).embed_text("vector search engine")
    second = LocalEmbedder(dimension=32).embed_text("Vector SEARCH engine")

    assert first == second
    assert len(first) == 32
    assert any(value != 0.0 for value in first)


def test_local_embedder_empty_input_is_zero_vector() -> None:
    embedder = LocalEmbedder(dimension=16)

    assert embedder.embed_text("") == [0.0] * 16
    assert embedder.embed_text("?!") == [0.0] * 16


def test_local_embedder_average_pools_known_words() -> None:
    embedder = LocalEmbedder(
        dimension=2,
        word_vectors={"apple": (1.0, 0.0), "car": (0.0, 1.0)},
    )

    assert embedder.embed_text("apple car") == [0.5, 0.5]
    assert embedder.embed_text("apple unknownword") == [1.0, 0.0]
    assert embedder.embed_text("nothing known here") == [0.0, 0.0]


def test_local_embedder_rejects_mismatched_table() -> None:
    with pytest.raises(EmbeddingConfigError):
        LocalEmbedder(dimension=3, word_vectors={"apple": (1.0, 0.0)})
    with pytest.raises(EmbeddingConfigError):
        LocalEmbedder(dimension=0)


def test_load_word_vectors_skips_word2vec_header(tmp_path) -> None:
    path = tmp_path / "vectors.txt"
    path.write_text("2 3\napple 1 0 0\nCar 0 1 0\n", encoding="utf-8")

    table = load_word_vectors(path)
    embedder = LocalEmbedder.from_file(path)

    assert table == {"apple": (1.0, 0.0, 0.0), "car": (0.0, 1.0, 0.0)}
    assert embedder.dimension == 3
    assert embedder.embed_text("car") == [0.0, 1.0, 0.0]


def test_load_word_vectors_requires_consistent_lengths(tmp_path) -> None:
    path = tmp_path / "broken.txt"
    path.write_text("apple 1 0\ncar 0 1 0\n", encoding="utf-8")

    with pytest.raises(EmbeddingConfigError):
        load_word_vectors(path)


@pytest.mark.anyio
async def test_local_embedder_batch_matches_single() -> None:
    embedder = LocalEmbedder(dimension=8)

    batch = await embedder.embed_batch(["alpha", "beta"])

    assert batch == [await embedder.embed("alpha"), await embedder.embed("beta")]


def test_validate_vector_rejects_bad_values() -> None:
    with pytest.raises(EmbeddingFailed):
        validate_vector([1.0], 2)
    with pytest.raises(EmbeddingFailed):
        validate_vector([1.0, math.nan], 2)
    with pytest.raises(EmbeddingFailed):
        validate_vector([1.0, "x"], 2)
    assert validate_vector([1, 2], 2) == [1.0, 2.0]


@pytest.mark.anyio
async def test_openai_embedder_orders_by_response_index() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ],
                "usage": {"prompt_tokens": 2, "total_tokens": 2},
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        embedder = OpenAIEmbedder(
            api_key="sk-test",
            model="custom-embed",
            dimension=2,
            base_url="http://embeddings.test/v1/",
            client=client,
        )
        vectors = await embedder.embed_batch(["first", "second"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert captured["url"] == "http://embeddings.test/v1/embeddings"
    assert captured["body"] == {"model": "custom-embed", "input": ["first", "second"]}
    assert captured["auth"] == "Bearer sk-test"


@pytest.mark.anyio
async def test_openai_embedder_non_success_status_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "rate limited"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(api_key="sk-test", model="custom-embed", dimension=2, client=client)
        with pytest.raises(EmbeddingFailed):
            await embedder.embed("hello")


@pytest.mark.anyio
async def test_openai_embedder_transport_error_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(api_key="sk-test", model="custom-embed", dimension=2, client=client)
        with pytest.raises(EmbeddingFailed):
            await embedder.embed_batch(["hello"])


@pytest.mark.anyio
async def test_openai_embedder_rejects_short_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0]}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(api_key="sk-test", model="custom-embed", dimension=2, client=client)
        with pytest.raises(EmbeddingFailed):
            await embedder.embed_batch(["one", "two"])


@pytest.mark.anyio
async def test_openai_embedder_rejects_duplicate_indices() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 0, "embedding": [1.0, 0.0]},
                    {"index": 0, "embedding": [0.0, 1.0]},
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(api_key="sk-test", model="custom-embed", dimension=2, client=client)
        with pytest.raises(EmbeddingFailed):
            await embedder.embed_batch(["one", "two"])


@pytest.mark.anyio
async def test_openai_embedder_empty_batch_skips_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(api_key="sk-test", model="custom-embed", dimension=2, client=client)
        assert await embedder.embed_batch([]) == []


def test_openai_embedder_configuration() -> None:
    with pytest.raises(EmbeddingConfigError):
        OpenAIEmbedder(api_key="", model="text-embedding-3-small")
    with pytest.raises(EmbeddingConfigError):
        OpenAIEmbedder(api_key="sk-test", model="text-embedding-3-small", dimension=42)
    with pytest.raises(EmbeddingConfigError):
        OpenAIEmbedder(api_key="sk-test", model="unknown-model")

    embedder = OpenAIEmbedder(api_key="sk-test", model="text-embedding-3-small")

    assert embedder.dimension == 1536


def test_embedding_config_report() -> None:
    assert build_embedding_config_report("local", None, 256).ok
    assert not build_embedding_config_report("local", None, 0).ok
    missing_model = build_embedding_config_report("openai", None, 1536)
    assert missing_model.status == "error"
    mismatch = build_embedding_config_report("openai", "text-embedding-3-large", 1536)
    assert mismatch.action == "Set EMBEDDING_DIMENSION to 3072."
    assert build_embedding_config_report("openai", "custom", 64).status == "warning"
    assert build_embedding_config_report("cohere", None, 64).detail == "Unsupported embedding provider."
