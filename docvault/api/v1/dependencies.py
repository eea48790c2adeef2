"""
FastAPI dependencies shared by the v1 routers.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import BackgroundTasks, Depends, HTTPException, status

from docvault.core.database import get_session_factory
from docvault.core.exceptions import ConfigurationError
from docvault.repositories.documents import DocumentRepository, document_repository
from docvault.repositories.index import ChunkIndex
from docvault.services.embeddings import EmbeddingService
from docvault.services.hybrid_search import HybridSearchService
from docvault.services.parsing import BackgroundTasksParseQueue, ParseJobQueue
from docvault.services.pipeline import RAGPipeline


@lru_cache
def _embedding_service() -> EmbeddingService:
    # One client (and connection pool) per process
    return EmbeddingService()


def get_embedding_service() -> EmbeddingService:
    """Shared embedding client; 500 when the API key is missing."""
    try:
        return _embedding_service()
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message,
        ) from e


def get_repository() -> DocumentRepository:
    return document_repository


def get_pipeline(
    embedder: EmbeddingService = Depends(get_embedding_service),
    repository: DocumentRepository = Depends(get_repository),
) -> RAGPipeline:
    """Pipeline wired to the app's session factory."""
    index = ChunkIndex(get_session_factory())
    return RAGPipeline(
        embedder=embedder,
        search_service=HybridSearchService(embedder, index),
        repository=repository,
    )


def get_parse_queue(background_tasks: BackgroundTasks) -> ParseJobQueue:
    return BackgroundTasksParseQueue(background_tasks)
