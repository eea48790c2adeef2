"""
Parse Jobs

Text extraction runs as a job submitted to a queue rather than inline in
the upload request. The default queue hands jobs to FastAPI
``BackgroundTasks``; anything implementing ``ParseJobQueue`` can replace it.

Each job opens its own database session because background tasks run
after the HTTP response is sent, when the request-scoped session is
already closed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docvault.core.database import get_session_factory
from docvault.repositories.documents import DocumentRepository, document_repository
from docvault.services.ingestion import FileProcessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseJob:
    """Extraction request for one registered document."""

    document_id: uuid.UUID
    filename: str
    raw: bytes


class ParseJobQueue(Protocol):
    """Accepts parse jobs for asynchronous execution."""

    def enqueue(self, job: ParseJob) -> None: ...


class BackgroundTasksParseQueue:
    """
    Runs parse jobs as FastAPI background tasks.

    Args:
        background_tasks: The request's ``BackgroundTasks``.
        session_factory: Session factory for the job (defaults to the app's).
    """

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._background_tasks = background_tasks
        self._session_factory = session_factory

    def enqueue(self, job: ParseJob) -> None:
        factory = self._session_factory or get_session_factory()
        self._background_tasks.add_task(run_parse_job, job, factory)
        logger.info("Parse job queued for document %s", job.document_id)


async def run_parse_job(
    job: ParseJob,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    processor: FileProcessor | None = None,
    repository: DocumentRepository | None = None,
) -> None:
    """
    Extract the text of ``job`` and record the outcome on the document.

    Status moves ``pending -> processing -> completed``, or to ``failed``
    with the error message. Failures are recorded, not raised, since no
    caller is left to receive them.
    """
    processor = processor or FileProcessor()
    repository = repository or document_repository

    async with session_factory() as session:
        await repository.mark_processing(session, job.document_id)
        try:
            extracted = await processor.extract(job.filename, job.raw)
            await repository.mark_parsed(
                session,
                job.document_id,
                full_text=extracted.full_text,
                preview_text=extracted.preview_text,
            )
        except Exception as exc:
            logger.exception("Parsing failed for document %s", job.document_id)
            await session.rollback()
            error = str(exc)
        else:
            logger.info(
                "Parsed document %s: %d chars",
                job.document_id,
                len(extracted.full_text),
            )
            return

    # Record the failure in a fresh session
    async with session_factory() as session:
        await repository.mark_failed(session, job.document_id, error)
