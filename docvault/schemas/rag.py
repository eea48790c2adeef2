"""
RAG API Schemas

Pydantic models for the document, search, context and chat endpoints.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from docvault.models.schemas import SearchResult
from docvault.services.hybrid_search import DocumentGroup
from docvault.services.pipeline import ContextMode


class IngestResponse(BaseModel):
    """Response for the document upload endpoint."""

    document_id: UUID = Field(description="Document UUID (new or existing duplicate)")
    filename: str = Field(description="Original filename")
    status: str = Field(description="Upload status: 'processing' or 'duplicate'")
    message: str = Field(description="Human-readable status message")


class DocumentResponse(BaseModel):
    """Stored document state."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    size: int | None = None
    mime_type: str | None = None
    content_hash: str | None = None
    parse_status: str
    parse_error: str | None = None
    preview_text: str | None = None
    processed_for_embedding: bool
    chunk_count: int
    chunk_version: int
    parsed_at: datetime | None = None
    embedding_updated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class ProcessDocumentRequest(BaseModel):
    """Request body for chunking and embedding a document."""

    skip_chunking: bool = Field(
        default=False,
        description="Re-embed existing chunks instead of re-chunking",
    )
    model_name: str | None = Field(
        default=None,
        description="Target chat model; drives chunk sizing",
    )


class ProcessDocumentResponse(BaseModel):
    """Outcome of a processing run."""

    document_id: UUID
    chunks_created: int
    chunks_deleted: int
    embeddings_processed: int
    tokens_used: int
    is_preview_content: bool


class SearchRequest(BaseModel):
    """Request body for hybrid search."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Natural language search query",
    )
    limit: int = Field(default=10, ge=1, le=100, description="Maximum results")
    threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Maximum cosine distance for semantic matches",
    )
    hybrid_alpha: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Semantic weight (keyword weight is 1 - alpha)",
    )
    document_ids: list[UUID] | None = Field(
        default=None,
        description="Restrict the search to these documents",
    )


class SearchResponse(BaseModel):
    """Ranked search results, optionally grouped by document."""

    query: str
    total: int
    results: list[SearchResult] = Field(default_factory=list)
    groups: list[DocumentGroup] | None = None


class ContextRequest(BaseModel):
    """Request body for context assembly."""

    document_id: UUID
    model_name: str | None = None
    query: str | None = Field(
        default=None,
        max_length=2000,
        description="Ranks chunks when the context falls back to chunks",
    )
    mode: ContextMode = ContextMode.AUTO


class ContextResponse(BaseModel):
    """Assembled context and the budget it was built with."""

    document_id: UUID
    context: str
    source: str
    estimated_tokens: int
    max_tokens: int
    reserved_tokens: int
    max_relevant_chunks: int


class ChatRequest(BaseModel):
    """Request body for a streamed answer about one document."""

    document_id: UUID
    message: str = Field(..., min_length=1, max_length=4000)
    model_name: str | None = None
