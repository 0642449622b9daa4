from __future__ import annotations

import asyncio
import logging
import string
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ragcore.app.metrics import observe_retrieval, record_degraded, record_indexed
from ragcore.loaders.chunking import DocumentChunker
from ragcore.loaders.filesystem import iter_documents
from ragcore.loaders.text import DEFAULT_INGEST_EXTENSIONS
from ragcore.rag.cache import EmbeddingService
from ragcore.rag.embeddings import EmbeddingFailed
from ragcore.rag.tokens import tokenize
from ragcore.rag.types import (
    Document,
    EngineStats,
    IndexedDocument,
    IngestReport,
    RetrievalFilter,
    RetrievalResult,
    VectorEntry,
)
from ragcore.vectorstore.base import VectorStore

logger = logging.getLogger(__name__)

RRF_K = 60
RERANK_BONUS = 0.1
CANDIDATE_MULTIPLIER = 3


def query_terms(text: str) -> list[str]:
    """Split text on whitespace into lowercased, punctuation-trimmed unique terms."""
    seen: set[str] = set()
    terms: list[str] = []
    for raw in text.lower().split():
        term = raw.strip(string.punctuation)
        if not term or term in seen:
            continue
        seen.add(term)
        terms.append(term)
    return terms


@dataclass
class RetrievalEngine:
    """Index documents into a vector store and rank chunks for queries.

    Write paths (indexing) raise on embedding failure and never insert a
    partial document. Read paths log the failure and return no results.
    Embedding always completes before the store is touched, so a slow remote
    call never holds the store.
    """
    chunker: DocumentChunker
    embeddings: EmbeddingService
    vectorstore: VectorStore
    default_top_k: int = 5
    ingest_extensions: frozenset[str] = DEFAULT_INGEST_EXTENSIONS
    _manifest: dict[str, IndexedDocument] = field(default_factory=dict, init=False, repr=False)

    async def index_document(self, document: Document) -> IndexedDocument:
        """Chunk, embed and store a document, replacing any previous version."""
        chunks = self.chunker.chunk(document.content, document.metadata)
        vectors = await self.embeddings.embed_batch([chunk.text for chunk in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingFailed(
                f"Expected {len(chunks)} embeddings for {document.doc_id}, got {len(vectors)}"
            )
        entries = [
            VectorEntry(
                entry_id=uuid.uuid4().hex,
                document_id=document.doc_id,
                text=chunk.text,
                embedding=tuple(vector),
                metadata=chunk.metadata,
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        self.vectorstore.replace_document(document.doc_id, entries)
        record = IndexedDocument(
            document_id=document.doc_id,
            chunk_count=len(entries),
            indexed_at=datetime.now(timezone.utc),
        )
        self._manifest[document.doc_id] = record
        record_indexed(len(entries))
        logger.info(
            "document_indexed",
            extra={"document_id": document.doc_id, "chunks": len(entries)},
        )
        return record

    async def index_documents(
        self,
        documents: Iterable[Document],
        cancel_event: asyncio.Event | None = None,
    ) -> IngestReport:
        """Index documents one at a time, stopping between documents when cancelled.

        Documents indexed before a cancellation or failure stay indexed.
        """
        report = IngestReport()
        for document in documents:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.info(
                    "ingest_cancelled",
                    extra={"indexed": report.document_count},
                )
                break
            record = await self.index_document(document)
            report.document_ids.append(record.document_id)
            report.chunk_count += record.chunk_count
            await asyncio.sleep(0)
        return report

    async def index_directory(
        self,
        root: Path | str,
        extensions: Iterable[str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestReport:
        """Index every allowed file below root; unreadable files are skipped."""
        root_path = Path(root)
        if not root_path.is_dir():
            raise NotADirectoryError(str(root_path))
        skipped: list[str] = []
        documents = iter_documents(root_path, extensions or self.ingest_extensions, skipped=skipped)
        report = await self.index_documents(documents, cancel_event=cancel_event)
        report.skipped = len(skipped)
        logger.info(
            "directory_indexed",
            extra={
                "root": str(root_path),
                "documents": report.document_count,
                "chunks": report.chunk_count,
                "skipped": report.skipped,
            },
        )
        return report

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        filter: RetrievalFilter | None = None,
    ) -> list[RetrievalResult]:
        """Rank chunks by vector similarity; embedding failures yield no results."""
        limit = self._limit(top_k)
        if limit <= 0 or not query.strip():
            return []
        started = time.monotonic()
        try:
            vector = await self.embeddings.embed(query)
        except EmbeddingFailed as exc:
            logger.warning(
                "retrieval_degraded",
                extra={"operation": "retrieve", "error": str(exc)},
            )
            record_degraded("retrieve")
            return []
        results = self.vectorstore.search(vector, top_k=limit, filter=filter)
        observe_retrieval("retrieve", time.monotonic() - started)
        logger.info(
            "retrieval_complete",
            extra={
                "results": len(results),
                "query_length": len(query),
            },
        )
        return [RetrievalResult.from_search(result) for result in results]

    async def retrieve_with_reranking(
        self,
        query: str,
        top_k: int | None = None,
        filter: RetrievalFilter | None = None,
    ) -> list[RetrievalResult]:
        """Over-fetch candidates and rerank them with a lexical overlap bonus.

        This is a keyword heuristic standing in for a cross-encoder, not a
        learned reranker.
        """
        limit = self._limit(top_k)
        candidates = await self.retrieve(query, top_k=limit * CANDIDATE_MULTIPLIER, filter=filter)
        terms = set(query_terms(query))
        rescored = []
        for candidate in candidates:
            overlap = len(terms.intersection(query_terms(candidate.content)))
            rescored.append((candidate, (candidate.score or 0.0) + RERANK_BONUS * overlap))
        rescored.sort(key=lambda item: item[1], reverse=True)
        return [candidate.with_score(score) for candidate, score in rescored[:limit]]

    async def keyword_search(self, query: str, top_k: int | None = None) -> list[RetrievalResult]:
        """Rank chunks by the share of query tokens found in the lexical index.

        The query is tokenized exactly like indexed text, so identifiers such as
        ``retry_limit`` match the postings of the text that contains them.
        """
        terms = tokenize(query)
        results = self.vectorstore.keyword_search(terms, top_k=self._limit(top_k))
        return [RetrievalResult.from_search(result) for result in results]

    async def hybrid_search(self, query: str, top_k: int | None = None) -> list[RetrievalResult]:
        """Fuse semantic and keyword rankings per document with Reciprocal Rank Fusion."""
        limit = self._limit(top_k)
        started = time.monotonic()
        semantic = await self.retrieve(query, top_k=limit)
        lexical = await self.keyword_search(query, top_k=limit)
        fused: dict[str, float] = {}
        best: dict[str, tuple[int, RetrievalResult]] = {}
        for ranking in (semantic, lexical):
            for rank, result in enumerate(ranking, start=1):
                fused[result.id] = fused.get(result.id, 0.0) + 1.0 / (RRF_K + rank)
                # the best-ranked chunk represents its document
                if result.id not in best or rank < best[result.id][0]:
                    best[result.id] = (rank, result)
        ordered = sorted(fused.items(), key=lambda item: item[1], reverse=True)
        observe_retrieval("hybrid", time.monotonic() - started)
        return [best[doc_id][1].with_score(score) for doc_id, score in ordered[:limit]]

    async def remove_document(self, document_id: str) -> int:
        """Remove every chunk of a document and forget it in the manifest."""
        removed = self.vectorstore.remove(document_id)
        self._manifest.pop(document_id, None)
        logger.info(
            "document_removed",
            extra={"document_id": document_id, "chunks": removed},
        )
        return removed

    async def clear(self) -> None:
        self.vectorstore.clear()
        self._manifest.clear()
        logger.info("index_cleared")

    def is_indexed(self, document_id: str) -> bool:
        return document_id in self._manifest

    def indexed_documents(self) -> list[IndexedDocument]:
        return sorted(self._manifest.values(), key=lambda record: record.indexed_at)

    def stats(self) -> EngineStats:
        store_stats = self.vectorstore.stats()
        return EngineStats(
            document_count=len(self._manifest),
            chunk_count=store_stats.vector_count,
            index_size=store_stats.memory_usage,
        )

    def _limit(self, top_k: int | None) -> int:
        return self.default_top_k if top_k is None else top_k
