"""
RAG Pipeline Orchestrator

Single entry point for the API layer. Composes the chunker, embedding
client, hybrid search, context budgeter and LLM into the exposed
workflows:

    process_document: stored text -> chunks -> embeddings -> chunk swap
    search:           query -> hybrid search -> ranked results
    build_context:    document or ranked chunks -> model context
    stream_answer:    context + question -> streamed answer
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from docvault.core.config import settings
from docvault.core.exceptions import DocumentNotFoundError, EmptyContentError
from docvault.models.orm import ChunkRecord, DocumentRecord
from docvault.models.schemas import SearchResult
from docvault.repositories.documents import DocumentRepository, document_repository
from docvault.services.chunking import TextChunker
from docvault.services.context import (
    EMPTY_CONTEXT_MARKER,
    ContextBudgeter,
    RankedChunk,
    estimate_tokens,
)
from docvault.services.context_config import (
    ContextBudgetConfig,
    get_context_config,
    select_config,
)
from docvault.services.embeddings import EmbeddingService
from docvault.services.hybrid_search import HybridSearchService, SearchOptions
from docvault.services.llm import LLMService

logger = logging.getLogger(__name__)


class ProcessResult(NamedTuple):
    """Return value of ``process_document``."""

    chunks_created: int
    chunks_deleted: int
    embeddings_processed: int
    tokens_used: int
    is_preview_content: bool


class ContextMode(str, enum.Enum):
    """How ``build_context`` picks its content for a document."""

    AUTO = "auto"  # full text -> preview -> chunks -> empty marker
    RAG = "rag"  # chunks only


class ContextSource(str, enum.Enum):
    """Where the assembled context came from."""

    FULL_TEXT = "full_text"
    PREVIEW = "preview"
    CHUNKS = "chunks"
    EMPTY = "empty"


@dataclass
class ContextResult:
    """Assembled context plus how it was produced."""

    context: str
    source: ContextSource
    estimated_tokens: int
    config: ContextBudgetConfig


class RAGPipeline:
    """
    Orchestrates document processing, retrieval and answering.

    Collaborators are injected so tests and scripts can swap any of them.

    Usage::

        pipeline = RAGPipeline(embedder=embedder, search_service=search)
        async with session_factory() as session:
            result = await pipeline.process_document(session, document_id)
            ctx = await pipeline.build_context(session, document_id, "gpt-4o-mini")
    """

    def __init__(
        self,
        *,
        embedder: EmbeddingService,
        search_service: HybridSearchService,
        repository: DocumentRepository | None = None,
        llm: LLMService | None = None,
    ) -> None:
        self._embedder = embedder
        self._search = search_service
        self._repository = repository or document_repository
        self._llm = llm

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_document(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        *,
        skip_chunking: bool = False,
        model_name: str | None = None,
    ) -> ProcessResult:
        """
        Chunk and embed a document's stored text.

        Uses the full text, falling back to the preview when the full text
        is missing. Chunk sizes follow ``select_config`` for ``model_name``
        and the content length. Embeddings are computed before the chunk
        set is swapped, so a provider failure leaves the previous set intact.

        With ``skip_chunking`` on a document that already has chunks, the
        existing chunks are re-embedded in place.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            EmptyContentError: If there is no text to process.
        """
        document = await self._get_document(session, document_id)

        content = document.full_text or document.preview_text or ""
        if not content.strip():
            raise EmptyContentError(
                f"Document {document_id} has no content to process",
                document_id=document_id,
            )
        is_preview = not document.full_text

        if is_preview:
            logger.warning(
                "Document %s has no full text, processing preview (%d chars)",
                document_id,
                len(content),
            )

        if skip_chunking and document.chunk_count > 0:
            return await self._reembed(session, document_id, is_preview)

        config = select_config(model_name or settings.LLM_MODEL, len(content))
        chunks = TextChunker(config.chunk_options()).split(document_id, content)

        batch = await self._embedder.embed_many([chunk.content for chunk in chunks])
        records = [
            ChunkRecord(
                id=chunk.id,
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                start_position=chunk.start_position,
                end_position=chunk.end_position,
                page_index=chunk.page_index,
                chunk_metadata=chunk.metadata,
                embedding=vector,
            )
            for chunk, vector in zip(chunks, batch.vectors, strict=True)
        ]

        chunks_deleted = await self._repository.replace_chunks(
            session, document_id, records
        )
        logger.info(
            "Processed document %s: %d chunks, %d tokens",
            document_id,
            len(records),
            batch.tokens_used,
        )
        return ProcessResult(
            chunks_created=len(records),
            chunks_deleted=chunks_deleted,
            embeddings_processed=len(batch.vectors),
            tokens_used=batch.tokens_used,
            is_preview_content=is_preview,
        )

    async def _reembed(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        is_preview: bool,
    ) -> ProcessResult:
        existing = await self._repository.get_chunks(session, document_id)
        batch = await self._embedder.embed_many([chunk.content for chunk in existing])
        await self._repository.update_embeddings(
            session,
            document_id,
            {chunk.id: vector for chunk, vector in zip(existing, batch.vectors, strict=True)},
        )
        logger.info(
            "Re-embedded %d existing chunks of document %s", len(existing), document_id
        )
        return ProcessResult(
            chunks_created=0,
            chunks_deleted=0,
            embeddings_processed=len(batch.vectors),
            tokens_used=batch.tokens_used,
            is_preview_content=is_preview,
        )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Hybrid search across stored chunks."""
        return await self._search.search(query, options or SearchOptions.from_settings())

    async def build_context(
        self,
        session: AsyncSession,
        source: uuid.UUID | Sequence[RankedChunk],
        model_name: str | None = None,
        *,
        query: str | None = None,
        mode: ContextMode = ContextMode.AUTO,
    ) -> ContextResult:
        """
        Assemble the model context for a document or for ranked chunks.

        For a document, ``AUTO`` tries the full text, then the preview,
        then its chunks (ranked by ``query`` when given, stored order
        otherwise), then the empty marker. ``RAG`` goes straight to the
        chunks. An empty context is logged, never raised.

        Raises:
            DocumentNotFoundError: If ``source`` names a missing document.
        """
        model_name = model_name or settings.LLM_MODEL

        if not isinstance(source, uuid.UUID):
            config = get_context_config(model_name)
            return self._assemble(list(source), config)

        document = await self._get_document(session, source)
        text_length = len(document.full_text or document.preview_text or "")
        config = select_config(model_name, text_length)

        if mode is ContextMode.AUTO:
            if document.full_text and document.full_text.strip():
                return self._full_text(document.full_text, ContextSource.FULL_TEXT, config)
            if document.preview_text and document.preview_text.strip():
                logger.warning(
                    "Document %s has no full text, using preview for context", source
                )
                return self._full_text(document.preview_text, ContextSource.PREVIEW, config)

        chunks = await self._context_chunks(session, document, config, query)
        return self._assemble(chunks, config)

    async def _context_chunks(
        self,
        session: AsyncSession,
        document: DocumentRecord,
        config: ContextBudgetConfig,
        query: str | None,
    ) -> Sequence[RankedChunk]:
        if query and query.strip():
            options = SearchOptions.from_settings(
                limit=config.max_relevant_chunks,
                document_ids=(document.id,),
            )
            return await self._search.search(query, options)

        stored = await self._repository.get_chunks(session, document.id)
        return list(stored[: config.max_relevant_chunks])

    def _assemble(
        self,
        chunks: Sequence[RankedChunk],
        config: ContextBudgetConfig,
    ) -> ContextResult:
        assembled = ContextBudgeter(config).assemble(chunks)
        if not assembled.chunks_included:
            logger.warning("No document content available for context")
            return ContextResult(
                context=EMPTY_CONTEXT_MARKER,
                source=ContextSource.EMPTY,
                estimated_tokens=estimate_tokens(EMPTY_CONTEXT_MARKER),
                config=config,
            )
        return ContextResult(
            context=assembled.text,
            source=ContextSource.CHUNKS,
            estimated_tokens=assembled.tokens,
            config=config,
        )

    @staticmethod
    def _full_text(
        text: str,
        source: ContextSource,
        config: ContextBudgetConfig,
    ) -> ContextResult:
        context = ContextBudgeter.build_full_document_context(text)
        return ContextResult(
            context=context,
            source=source,
            estimated_tokens=estimate_tokens(context),
            config=config,
        )

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    async def stream_answer(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
        message: str,
        model_name: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream an answer to ``message`` grounded in one document.

        The context is built before the first fragment is yielded, so a
        missing document fails before any output.
        """
        if self._llm is None:
            self._llm = LLMService()

        context = await self.build_context(session, document_id, model_name, query=message)
        logger.info(
            "Answering from %s context (~%d tokens) for document %s",
            context.source.value,
            context.estimated_tokens,
            document_id,
        )
        return self._llm.stream_completion(context.context, message, model_name)

    async def _get_document(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
    ) -> DocumentRecord:
        document = await self._repository.get_by_id(session, document_id)
        if document is None:
            raise DocumentNotFoundError(
                f"Document {document_id} not found", document_id=document_id
            )
        return document
