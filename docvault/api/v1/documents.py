"""
Documents API Router

Endpoints:
    POST   /documents               — Upload a file (202, or 200 for duplicates).
    GET    /documents/{id}          — Document state.
    DELETE /documents/{id}          — Delete a document and its chunks.
    POST   /documents/{id}/process  — Chunk and embed the stored text.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response, UploadFile, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.api.v1.dependencies import get_parse_queue, get_pipeline, get_repository
from docvault.api.v1.errors import handle_service_errors
from docvault.core.database import get_db
from docvault.core.exceptions import DocumentNotFoundError
from docvault.models.orm import DocumentRecord, ParseStatus
from docvault.repositories.documents import DocumentRepository
from docvault.schemas.rag import (
    DocumentResponse,
    IngestResponse,
    ProcessDocumentRequest,
    ProcessDocumentResponse,
)
from docvault.services.ingestion import compute_hash, detect_mime_type
from docvault.services.parsing import ParseJob, ParseJobQueue
from docvault.services.pipeline import RAGPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=IngestResponse,
    summary="Upload a document",
    responses={
        200: {"description": "File already uploaded (duplicate)"},
        202: {"description": "File accepted for background parsing"},
        422: {"description": "Unsupported file type"},
    },
)
@handle_service_errors
async def upload_document(
    file: UploadFile,
    response: Response,
    db: AsyncSession = Depends(get_db),
    repo: DocumentRepository = Depends(get_repository),
    queue: ParseJobQueue = Depends(get_parse_queue),
) -> IngestResponse:
    """
    Register an uploaded PDF, Markdown or text file.

    The content is hashed (SHA-256) for deduplication. A file that was
    already uploaded returns 200 with the existing document. Otherwise a
    ``pending`` document is created, text extraction is queued, and the
    endpoint returns 202 immediately.
    """
    filename = file.filename or "unknown"
    mime_type = detect_mime_type(filename)
    raw = await file.read()
    content_hash = compute_hash(raw)

    existing = await repo.get_by_hash(db, content_hash)
    if existing is not None:
        return _duplicate(response, existing, filename)

    try:
        document = await repo.create(
            db,
            {
                "name": filename,
                "content_hash": content_hash,
                "size": len(raw),
                "mime_type": mime_type,
                "parse_status": ParseStatus.PENDING.value,
            },
        )
    except IntegrityError:
        # Lost a race against a concurrent upload of the same bytes
        await db.rollback()
        existing = await repo.get_by_hash(db, content_hash)
        if existing is None:
            raise
        return _duplicate(response, existing, filename)

    queue.enqueue(ParseJob(document_id=document.id, filename=filename, raw=raw))
    logger.info("Accepted upload '%s' as document %s", filename, document.id)

    response.status_code = status.HTTP_202_ACCEPTED
    return IngestResponse(
        document_id=document.id,
        filename=filename,
        status="processing",
        message=f"'{filename}' accepted for processing.",
    )


def _duplicate(response: Response, existing: DocumentRecord, filename: str) -> IngestResponse:
    logger.info("Duplicate upload '%s' (document %s)", filename, existing.id)
    response.status_code = status.HTTP_200_OK
    return IngestResponse(
        document_id=existing.id,
        filename=filename,
        status="duplicate",
        message=f"File already uploaded as '{existing.name}'.",
    )


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Get a document",
)
@handle_service_errors
async def get_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    repo: DocumentRepository = Depends(get_repository),
) -> DocumentResponse:
    document = await _require_document(db, repo, document_id)
    return DocumentResponse.model_validate(document)


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
)
@handle_service_errors
async def delete_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    repo: DocumentRepository = Depends(get_repository),
) -> Response:
    """Delete a document; its chunks follow the foreign-key cascade."""
    document = await _require_document(db, repo, document_id)
    await repo.delete(db, document)
    logger.info("Deleted document %s", document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{document_id}/process",
    response_model=ProcessDocumentResponse,
    summary="Chunk and embed a document",
)
@handle_service_errors
async def process_document(
    document_id: UUID,
    request: ProcessDocumentRequest | None = None,
    db: AsyncSession = Depends(get_db),
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> ProcessDocumentResponse:
    """
    Split the document's stored text into chunks, embed them, and swap
    them in for the previous chunk set in one transaction.

    Falls back to the preview text when the full text is missing
    (``is_preview_content`` is then true).
    """
    request = request or ProcessDocumentRequest()
    result = await pipeline.process_document(
        db,
        document_id,
        skip_chunking=request.skip_chunking,
        model_name=request.model_name,
    )
    return ProcessDocumentResponse(document_id=document_id, **result._asdict())


async def _require_document(
    db: AsyncSession,
    repo: DocumentRepository,
    document_id: UUID,
) -> DocumentRecord:
    document = await repo.get_by_id(db, document_id)
    if document is None:
        raise DocumentNotFoundError(
            f"Document {document_id} not found", document_id=document_id
        )
    return document
