"""
Document Repository

Data access layer for documents and their chunk sets.

Key guarantees:
    - ``replace_chunks`` swaps a document's whole chunk set inside one
      transaction that holds a row lock on the document; concurrent
      readers observe either the previous set or the new one.
    - ``content_hash`` lookups back duplicate-upload detection.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.exceptions import DocumentNotFoundError
from docvault.models.orm import ChunkRecord, DocumentRecord, ParseStatus
from docvault.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class DocumentRepository(BaseRepository[DocumentRecord]):
    """
    Repository for documents, parse status and chunk persistence.

    Inherits standard CRUD from BaseRepository and adds:
        - get_by_hash: duplicate detection
        - mark_processing / mark_parsed / mark_failed: parse lifecycle
        - get_chunks / replace_chunks / update_embeddings: chunk sets
    """

    def __init__(self) -> None:
        super().__init__(DocumentRecord)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_by_hash(
        self,
        session: AsyncSession,
        content_hash: str,
    ) -> DocumentRecord | None:
        """Look up a document by its SHA-256 content hash."""
        stmt = select(DocumentRecord).where(DocumentRecord.content_hash == content_hash)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def mark_processing(self, session: AsyncSession, document_id: uuid.UUID) -> None:
        """Flag a document as being parsed."""
        await self._set_parse_state(session, document_id, status=ParseStatus.PROCESSING)

    async def mark_parsed(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        *,
        full_text: str,
        preview_text: str,
    ) -> None:
        """Store extracted text and flag the document as parsed."""
        await self._set_parse_state(
            session,
            document_id,
            status=ParseStatus.COMPLETED,
            full_text=full_text,
            preview_text=preview_text,
            parse_error=None,
            parsed_at=datetime.now(UTC),
        )

    async def mark_failed(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        error: str,
    ) -> None:
        """Record a parse failure."""
        await self._set_parse_state(
            session,
            document_id,
            status=ParseStatus.FAILED,
            parse_error=error,
        )

    async def _set_parse_state(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        *,
        status: ParseStatus,
        **values: object,
    ) -> None:
        stmt = (
            update(DocumentRecord)
            .where(DocumentRecord.id == document_id)
            .values(parse_status=status.value, **values)
        )
        await session.execute(stmt)
        await session.commit()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def get_chunks(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
    ) -> Sequence[ChunkRecord]:
        """Get all chunks for a document, ordered by index."""
        stmt = (
            select(ChunkRecord)
            .where(ChunkRecord.document_id == document_id)
            .order_by(ChunkRecord.chunk_index)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def replace_chunks(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        chunks: list[ChunkRecord],
    ) -> int:
        """
        Atomically replace a document's chunk set.

        Locks the document row, deletes the existing chunks, inserts the
        new ones, bumps ``chunk_version`` and updates the processing flags,
        all in one transaction.

        Returns:
            Number of chunks deleted.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        try:
            document = await self._lock_document(session, document_id)

            deleted = await session.execute(
                delete(ChunkRecord).where(ChunkRecord.document_id == document_id)
            )
            session.add_all(chunks)

            document.chunk_count = len(chunks)
            document.chunk_version += 1
            document.processed_for_embedding = all(
                chunk.embedding is not None for chunk in chunks
            )
            document.embedding_updated_at = datetime.now(UTC)

            await session.flush()
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        chunks_deleted = deleted.rowcount or 0
        logger.info(
            "Replaced chunks of document %s: -%d +%d (version=%d)",
            document_id,
            chunks_deleted,
            len(chunks),
            document.chunk_version,
        )
        return chunks_deleted

    async def update_embeddings(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        embeddings: Mapping[uuid.UUID, list[float]],
    ) -> None:
        """
        Store fresh embeddings for existing chunks of one document.

        Runs under the same document row lock as ``replace_chunks``.
        """
        try:
            document = await self._lock_document(session, document_id)
            if embeddings:
                await session.execute(
                    update(ChunkRecord),
                    [
                        {"id": chunk_id, "embedding": vector}
                        for chunk_id, vector in embeddings.items()
                    ],
                )
            document.processed_for_embedding = True
            document.chunk_count = len(embeddings)
            document.embedding_updated_at = datetime.now(UTC)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            "Updated %d embeddings for document %s", len(embeddings), document_id
        )

    async def _lock_document(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
    ) -> DocumentRecord:
        stmt = (
            select(DocumentRecord)
            .where(DocumentRecord.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        document = (await session.execute(stmt)).scalars().first()
        if document is None:
            raise DocumentNotFoundError(
                f"Document {document_id} not found", document_id=document_id
            )
        return document


# Module-level singleton for convenience imports
document_repository = DocumentRepository()
