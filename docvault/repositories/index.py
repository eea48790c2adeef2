"""
Chunk Index

Read-side accessors over the persisted chunk store:
    - semantic_search: pgvector cosine distance over chunk embeddings.
    - keyword_search:  case-insensitive substring matching on content.

Each query opens its own session from the injected session factory, so
the semantic and keyword halves of one hybrid query can run concurrently
(an ``AsyncSession`` does not support concurrent statements).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docvault.core.exceptions import DimensionMismatchError
from docvault.models.orm import EMBEDDING_DIMENSION, ChunkRecord, DocumentRecord
from docvault.models.schemas import RelevanceType, SearchResult
from docvault.services.keywords import extract_keywords, keyword_score

logger = logging.getLogger(__name__)


class ChunkIndex:
    """
    Similarity and keyword search over stored chunks.

    Usage::

        index = ChunkIndex(get_session_factory())
        hits = await index.semantic_search(vector, limit=20, similarity_threshold=0.7)
        words = await index.keyword_search("invoice total", limit=20)

    Args:
        session_factory: Factory for short-lived read sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def semantic_search(
        self,
        query_vector: Sequence[float],
        *,
        limit: int,
        similarity_threshold: float,
        document_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[SearchResult]:
        """
        Nearest chunks by cosine similarity.

        Only chunks with ``1 - distance >= similarity_threshold`` are kept.
        Chunks without an embedding never match. An empty or missing
        ``document_ids`` means no document restriction.

        Returns:
            Results ordered by similarity (highest first), at most ``limit``.

        Raises:
            DimensionMismatchError: If the query vector is not 1536-dim.
        """
        if len(query_vector) != EMBEDDING_DIMENSION:
            raise DimensionMismatchError(EMBEDDING_DIMENSION, len(query_vector))

        vector = [float(v) for v in query_vector]
        distance = ChunkRecord.embedding.cosine_distance(vector).label("distance")

        stmt = (
            select(ChunkRecord, DocumentRecord.name, distance)
            .join(DocumentRecord, DocumentRecord.id == ChunkRecord.document_id)
            .where(ChunkRecord.embedding.isnot(None))
            .where(distance <= 1.0 - similarity_threshold)
        )
        if document_ids:
            stmt = stmt.where(ChunkRecord.document_id.in_(list(document_ids)))
        stmt = stmt.order_by(distance).limit(limit)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        results = [
            _to_result(
                chunk,
                name,
                _clamp(1.0 - float(dist)),
                RelevanceType.SEMANTIC,
            )
            for chunk, name, dist in rows
        ]
        logger.debug("Semantic search returned %d chunks", len(results))
        return results

    async def keyword_search(
        self,
        query: str,
        *,
        limit: int,
        document_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[SearchResult]:
        """
        Chunks containing any extracted keyword (OR semantics).

        Returns an empty list when the query yields no keywords.
        Scores are keyword-presence ratios; results are sorted by score.
        """
        keywords = extract_keywords(query)
        logger.debug("Extracted keywords: %s", keywords)
        if not keywords:
            return []

        conditions = [ChunkRecord.content.ilike(f"%{keyword}%") for keyword in keywords]
        stmt = (
            select(ChunkRecord, DocumentRecord.name)
            .join(DocumentRecord, DocumentRecord.id == ChunkRecord.document_id)
            .where(or_(*conditions))
        )
        if document_ids:
            stmt = stmt.where(ChunkRecord.document_id.in_(list(document_ids)))
        stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        results = [
            _to_result(
                chunk,
                name,
                keyword_score(chunk.content, keywords),
                RelevanceType.KEYWORD,
            )
            for chunk, name in rows
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug("Keyword search returned %d chunks", len(results))
        return results


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _to_result(
    chunk: ChunkRecord,
    document_name: str,
    score: float,
    relevance_type: RelevanceType,
) -> SearchResult:
    return SearchResult(
        chunk_id=chunk.id,
        document_id=chunk.document_id,
        document_name=document_name,
        content=chunk.content,
        chunk_index=chunk.chunk_index,
        score=score,
        relevance_type=relevance_type,
        metadata=chunk.chunk_metadata or None,
    )
