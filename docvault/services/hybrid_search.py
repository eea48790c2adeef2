"""
Hybrid Search

Combines semantic (vector) and keyword (lexical) retrieval into one
ranked, deduplicated result list.

Ranking:
    - Semantic scores are weighted by ``alpha``, keyword scores by
      ``1 - alpha``; a chunk found by both gets the sum and becomes
      ``hybrid``.
    - Results whose first 100 characters hash identically are collapsed
      to the first one seen. This also merges distinct chunks that share
      a 100-character prefix (e.g. a common header), trading precision
      for fewer near-duplicates from overlapping windows.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import BaseModel

from docvault.core.config import settings
from docvault.models.schemas import RelevanceType, SearchResult
from docvault.repositories.index import ChunkIndex
from docvault.services.embeddings import EmbeddingService

logger = logging.getLogger(__name__)

DEFAULT_HYBRID_ALPHA = 0.7
FINGERPRINT_CHARS = 100


@dataclass(frozen=True)
class SearchOptions:
    """
    Hybrid search tuning.

    Attributes:
        limit: Maximum number of results returned.
        threshold: Maximum cosine distance for semantic hits
            (semantic similarity must be at least ``1 - threshold``).
        document_ids: Restrict the search to these documents.
        hybrid_alpha: Semantic weight in [0, 1].
    """

    limit: int = 10
    threshold: float = 0.3
    document_ids: tuple[uuid.UUID, ...] | None = None
    hybrid_alpha: float = DEFAULT_HYBRID_ALPHA

    @classmethod
    def from_settings(cls, **overrides: object) -> SearchOptions:
        values: dict[str, object] = {
            "limit": settings.SEARCH_LIMIT,
            "threshold": settings.SEARCH_THRESHOLD,
            "hybrid_alpha": settings.HYBRID_ALPHA,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


class DocumentGroup(BaseModel):
    """Search results of a single document."""

    document_id: uuid.UUID
    document_name: str
    results: list[SearchResult]
    average_score: float
    chunk_count: int


def merge_results(
    semantic: Sequence[SearchResult],
    keyword: Sequence[SearchResult],
    alpha: float = DEFAULT_HYBRID_ALPHA,
) -> list[SearchResult]:
    """
    Blend semantic and keyword results, dedupe by content fingerprint,
    and sort by blended score (highest first).
    """
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must be within [0, 1], got {alpha}")

    merged: dict[uuid.UUID, SearchResult] = {}

    for result in semantic:
        merged[result.chunk_id] = result.model_copy(
            update={"score": result.score * alpha}
        )

    for result in keyword:
        existing = merged.get(result.chunk_id)
        if existing is not None:
            merged[result.chunk_id] = existing.model_copy(
                update={
                    "score": existing.score + result.score * (1 - alpha),
                    "relevance_type": RelevanceType.HYBRID,
                }
            )
        else:
            merged[result.chunk_id] = result.model_copy(
                update={"score": result.score * (1 - alpha)}
            )

    return deduplicate_results(list(merged.values()))


def content_fingerprint(content: str) -> str:
    """MD5 of the first 100 characters of ``content``."""
    return hashlib.md5(
        content[:FINGERPRINT_CHARS].encode("utf-8"),
        usedforsecurity=False,
    ).hexdigest()


def deduplicate_results(results: Sequence[SearchResult]) -> list[SearchResult]:
    """Keep the first result per content fingerprint, then sort by score."""
    seen: set[str] = set()
    unique: list[SearchResult] = []
    for result in results:
        fingerprint = content_fingerprint(result.content)
        if fingerprint in seen:
            continue
        seen.add(fingerprint)
        unique.append(result)
    return sorted(unique, key=lambda r: r.score, reverse=True)


def group_results_by_document(results: Sequence[SearchResult]) -> list[DocumentGroup]:
    """Group results per document, ordered by average score (highest first)."""
    buckets: dict[uuid.UUID, list[SearchResult]] = {}
    for result in results:
        buckets.setdefault(result.document_id, []).append(result)

    groups = [
        DocumentGroup(
            document_id=document_id,
            document_name=hits[0].document_name,
            results=hits,
            average_score=sum(hit.score for hit in hits) / len(hits),
            chunk_count=len(hits),
        )
        for document_id, hits in buckets.items()
    ]
    return sorted(groups, key=lambda g: g.average_score, reverse=True)


class HybridSearchService:
    """
    Semantic + keyword search over the chunk index.

    Usage::

        service = HybridSearchService(EmbeddingService(), ChunkIndex(factory))
        results = await service.search("invoice total", SearchOptions(limit=5))

    Args:
        embedder: Embeds the query for the semantic half.
        index: Chunk index used for both halves.
    """

    def __init__(self, embedder: EmbeddingService, index: ChunkIndex) -> None:
        self._embedder = embedder
        self._index = index

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """
        Run both searches concurrently, merge, and return the top results.

        Each half fetches ``2 * limit`` candidates before merging.

        Raises:
            ValueError: If the query is blank.
        """
        options = options or SearchOptions()
        if not query or not query.strip():
            raise ValueError("Search query must not be empty")

        candidates = options.limit * 2
        logger.info(
            "Hybrid search: query='%s', documents=%s, alpha=%.2f",
            query[:50],
            len(options.document_ids) if options.document_ids else "all",
            options.hybrid_alpha,
        )

        # A failing half cancels the other before the error propagates
        try:
            async with asyncio.TaskGroup() as group:
                semantic_task = group.create_task(
                    self._semantic(query, options, candidates)
                )
                keyword_task = group.create_task(
                    self._index.keyword_search(
                        query,
                        limit=candidates,
                        document_ids=options.document_ids,
                    )
                )
        except ExceptionGroup as eg:
            raise eg.exceptions[0] from None

        semantic, keyword = semantic_task.result(), keyword_task.result()
        logger.info(
            "Hybrid search: %d semantic, %d keyword results",
            len(semantic),
            len(keyword),
        )

        merged = merge_results(semantic, keyword, options.hybrid_alpha)
        logger.info("Hybrid search: %d unique results after merge", len(merged))
        return merged[: options.limit]

    async def _semantic(
        self,
        query: str,
        options: SearchOptions,
        limit: int,
    ) -> list[SearchResult]:
        embedding = await self._embedder.embed_one(query)
        return await self._index.semantic_search(
            embedding.vector,
            limit=limit,
            similarity_threshold=1.0 - options.threshold,
            document_ids=options.document_ids,
        )
