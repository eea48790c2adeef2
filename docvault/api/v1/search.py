"""
Search API Router

Endpoints:
    POST /search   — Hybrid search with a JSON body.
    GET  /search   — Hybrid search via query parameters (optionally grouped).
    POST /context  — Assemble the model context for a document.
    POST /chat     — Stream an answer about a document (Server-Sent Events).
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.api.v1.dependencies import get_pipeline
from docvault.api.v1.errors import handle_service_errors
from docvault.core.database import get_db
from docvault.schemas.rag import (
    ChatRequest,
    ContextRequest,
    ContextResponse,
    SearchRequest,
    SearchResponse,
)
from docvault.services.hybrid_search import SearchOptions, group_results_by_document
from docvault.services.pipeline import RAGPipeline

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_DONE = "data: [DONE]\n\n"


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Hybrid search across documents",
)
@handle_service_errors
async def search(
    request: SearchRequest,
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> SearchResponse:
    """
    Search stored chunks by combining vector similarity and keyword matches.

    Semantic scores are weighted by ``hybrid_alpha`` and keyword scores by
    ``1 - hybrid_alpha``; chunks found both ways are marked ``hybrid``.
    """
    options = SearchOptions(
        limit=request.limit,
        threshold=request.threshold,
        hybrid_alpha=request.hybrid_alpha,
        document_ids=tuple(request.document_ids) if request.document_ids else None,
    )
    results = await pipeline.search(request.query, options)
    return SearchResponse(query=request.query, total=len(results), results=results)


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Hybrid search via query parameters",
)
@handle_service_errors
async def search_get(
    q: str = Query(..., min_length=1, max_length=2000),
    limit: int | None = Query(default=None, ge=1, le=100),
    hybrid_alpha: float | None = Query(default=None, ge=0.0, le=1.0),
    group_by: Literal["document"] | None = Query(default=None),
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> SearchResponse:
    options = SearchOptions.from_settings(limit=limit, hybrid_alpha=hybrid_alpha)
    results = await pipeline.search(q, options)

    if group_by == "document":
        groups = group_results_by_document(results)
        return SearchResponse(query=q, total=len(results), groups=groups)
    return SearchResponse(query=q, total=len(results), results=results)


@router.post(
    "/context",
    response_model=ContextResponse,
    summary="Assemble model context for a document",
)
@handle_service_errors
async def build_context(
    request: ContextRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> ContextResponse:
    """
    Build the context a chat model would receive for a document.

    The full text is used when present, then the preview, then the
    document's chunks (ranked by ``query`` when given). ``mode=rag``
    goes straight to the chunks.
    """
    result = await pipeline.build_context(
        db,
        request.document_id,
        request.model_name,
        query=request.query,
        mode=request.mode,
    )
    return ContextResponse(
        document_id=request.document_id,
        context=result.context,
        source=result.source.value,
        estimated_tokens=result.estimated_tokens,
        max_tokens=result.config.max_tokens,
        reserved_tokens=result.config.reserved_tokens,
        max_relevant_chunks=result.config.max_relevant_chunks,
    )


@router.post(
    "/chat",
    summary="Stream an answer about a document",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
@handle_service_errors
async def chat(
    request: ChatRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> StreamingResponse:
    """
    Answer ``message`` from the document's content as Server-Sent Events.

    Each fragment is sent as ``data: {"chunk": "..."}``; the stream ends
    with ``data: [DONE]``. A provider failure mid-stream is reported as
    ``data: {"error": "..."}`` and the stream closes without ``[DONE]``.
    """
    logger.info(
        "Chat request: document=%s, message='%s'",
        request.document_id,
        request.message[:50],
    )
    fragments = await pipeline.stream_answer(
        db,
        request.document_id,
        request.message,
        request.model_name,
    )
    return StreamingResponse(
        _sse_frames(fragments),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


async def _sse_frames(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for fragment in fragments:
            yield f"data: {json.dumps({'chunk': fragment})}\n\n"
    except Exception as e:
        logger.exception("Chat stream failed")
        yield f"data: {json.dumps({'error': type(e).__name__})}\n\n"
        return
    yield SSE_DONE
