from __future__ import annotations

"""Embedding cache and batch de-duplication tests."""

import pytest

from ragcore.rag.cache import EmbeddingService
from ragcore.rag.embeddings import EmbeddingFailed


@pytest.mark.anyio
async def test_embed_uses_cache_for_repeated_text(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)

    first = await service.embed("alpha")
    second = await service.embed("alpha")

    assert first == second
    assert recording_provider.calls == [["alpha"]]
    assert service.cache_size == 1


@pytest.mark.anyio
async def test_batch_preserves_order_and_only_embeds_uncached(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)
    await service.embed("a")

    vectors = await service.embed_batch(["a", "bb", "ccc"])

    assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
    assert recording_provider.calls[-1] == ["bb", "ccc"]
    assert len(recording_provider.calls) == 2


@pytest.mark.anyio
async def test_batch_deduplicates_uncached_texts(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)

    vectors = await service.embed_batch(["x", "yy", "x"])

    assert recording_provider.calls == [["x", "yy"]]
    assert vectors == [[1.0, 1.0], [2.0, 1.0], [1.0, 1.0]]


@pytest.mark.anyio
async def test_fully_cached_batch_skips_provider(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)
    await service.embed_batch(["one", "two"])

    vectors = await service.embed_batch(["two", "one"])

    assert vectors == [[3.0, 1.0], [3.0, 1.0]]
    assert len(recording_provider.calls) == 1
    assert await service.embed_batch([]) == []
    assert len(recording_provider.calls) == 1


@pytest.mark.anyio
async def test_cache_flushes_when_full(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider, cache_limit=2)
    await service.embed("a")
    await service.embed("bb")
    assert service.cache_size == 2

    await service.embed("ccc")
    assert service.cache_size == 1

    await service.embed("a")
    assert recording_provider.calls[-1] == ["a"]
    assert len(recording_provider.calls) == 4


@pytest.mark.anyio
async def test_provider_failure_leaves_cache_untouched(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)
    await service.embed("kept")
    recording_provider.fail = True

    with pytest.raises(EmbeddingFailed):
        await service.embed_batch(["kept", "new"])

    assert service.cache_size == 1
    assert await service.embed("kept") == [4.0, 1.0]


@pytest.mark.anyio
async def test_returned_vectors_do_not_alias_cache(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)
    vector = await service.embed("abc")
    vector[0] = 99.0

    assert await service.embed("abc") == [3.0, 1.0]


def test_similarity_helpers(recording_provider) -> None:
    service = EmbeddingService(provider=recording_provider)

    assert service.similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    ranked = service.find_similar([1.0, 0.0], [[0.0, 1.0], [1.0, 0.1], [-1.0, 0.0]], top_k=2)
    assert [idx for idx, _ in ranked] == [1, 0]
