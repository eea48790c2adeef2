"""Models package — Pydantic schemas and SQLAlchemy ORM for the retrieval pipeline."""

from docvault.models.base import Base, TimestampMixin
from docvault.models.orm import (
    EMBEDDING_DIMENSION,
    ChunkRecord,
    DocumentRecord,
    ParseStatus,
)
from docvault.models.schemas import Chunk, RelevanceType, SearchResult

__all__ = [
    # Pydantic schemas (retrieval pipeline)
    "Chunk",
    "RelevanceType",
    "SearchResult",
    # SQLAlchemy ORM (persistence layer)
    "Base",
    "TimestampMixin",
    "ChunkRecord",
    "DocumentRecord",
    "ParseStatus",
    "EMBEDDING_DIMENSION",
]
