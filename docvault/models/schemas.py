"""
Retrieval Schemas

Pydantic models for the data flowing through the retrieval pipeline:
chunks produced by the chunker and ranked search results.
"""

from __future__ import annotations

import enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class RelevanceType(str, enum.Enum):
    """How a search result was found."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class Chunk(BaseModel):
    """
    A contiguous slice of a document's text.

    Produced by ``TextChunker``; offsets are approximate (see the chunker
    module docstring). ``document_id`` is unset for chunks of ad-hoc text.

    Attributes:
        id: Unique chunk identifier.
        document_id: Owning document, if any.
        chunk_index: Zero-based position within the document.
        content: Chunk text, overlap tail included.
        start_position: Approximate start offset in the source text.
        end_position: Approximate end offset in the source text.
        page_index: Source page, when known.
        metadata: Chunk-level details (chunk_size, overlap_chars, ...).
    """

    id: UUID = Field(default_factory=uuid4)
    document_id: UUID | None = Field(default=None)
    chunk_index: int = Field(ge=0, description="Position in document (0-based)")
    content: str = Field(min_length=1)
    start_position: int = Field(ge=0)
    end_position: int = Field(ge=0)
    page_index: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A ranked reference to a chunk, produced fresh per query."""

    chunk_id: UUID
    document_id: UUID
    document_name: str = Field(description="Display name of the owning document")
    content: str = Field(description="Chunk text content")
    chunk_index: int = Field(ge=0)
    score: float = Field(description="Relevance score in [0, 1], higher is better")
    relevance_type: RelevanceType
    metadata: dict[str, Any] | None = None
