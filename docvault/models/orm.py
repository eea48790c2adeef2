"""
Database Models

SQLAlchemy 2.0 ORM models for the document and chunk storage layer.
Uses pgvector for cosine similarity search on chunk embeddings.

Tables:
    documents — Uploaded files with content hash for deduplication.
    chunks    — Document segments with 1536-dim embeddings
                (text-embedding-3-small) and a generated tsvector.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Boolean,
    Computed,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docvault.models.base import Base, TimestampMixin

# Output size of text-embedding-3-small
EMBEDDING_DIMENSION: int = 1536


class ParseStatus(str, enum.Enum):
    """Text extraction lifecycle of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentRecord(TimestampMixin, Base):
    """
    Persistent storage for uploaded documents.

    The ``content_hash`` column is unique when present, so the same
    bytes cannot be registered twice. ``full_text`` stays NULL until the
    parse job for the document completes.

    ``chunk_version`` is bumped every time the chunk set is replaced,
    inside the same transaction as the replacement.
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    preview_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    parse_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ParseStatus.PENDING.value,
        index=True,
    )
    parse_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    processed_for_embedding: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    chunk_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embedding_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Cascade ensures chunks are deleted with the document
    chunks: Mapped[list[ChunkRecord]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChunkRecord.chunk_index",
    )

    def __repr__(self) -> str:
        return f"<DocumentRecord(id={self.id!s:.8}, name='{self.name}')>"


class ChunkRecord(Base):
    """
    Persistent storage for document chunks with vector embeddings.

    ``start_position``/``end_position`` are approximate character offsets
    into the source text as produced by ``TextChunker``.
    ``search_vector`` is generated by PostgreSQL from ``content``.
    """

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_index"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    start_position: Mapped[int] = mapped_column(Integer, nullable=False)
    end_position: Mapped[int] = mapped_column(Integer, nullable=False)
    page_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    chunk_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
    )
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(EMBEDDING_DIMENSION),
        nullable=True,
    )
    search_vector: Mapped[str | None] = mapped_column(
        TSVECTOR,
        Computed("to_tsvector('simple', content)", persisted=True),
        nullable=True,
    )

    document: Mapped[DocumentRecord] = relationship(back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<ChunkRecord(id={self.id!s:.8}, "
            f"doc={self.document_id!s:.8}, idx={self.chunk_index})>"
        )
