"""
Chunking Service

Splits a document's extracted text into overlapping, paragraph-respecting
chunks suitable for embedding and retrieval.

Algorithm:
    - Paragraphs are separated by blank lines.
    - Paragraphs are accumulated greedily (joined by ``\\n\\n``) until the
      next one would push the chunk past ``max_chunk_size``.
    - Each new chunk starts with the trailing words of the previous one
      (about ``overlap_size`` characters, assuming ~5 chars per word).
    - A trailing chunk shorter than ``min_chunk_size`` is dropped.
    - A single paragraph larger than ``max_chunk_size`` is kept whole.

Offsets are approximate: they follow the cumulative raw paragraph length
plus a 2-char separator per paragraph, not the chunk content itself.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from uuid import UUID

from docvault.models.schemas import Chunk

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_SIZE: int = 8000
DEFAULT_OVERLAP_SIZE: int = 400
DEFAULT_MIN_CHUNK_SIZE: int = 500

# Rough characters-per-word ratio used to size the overlap tail
CHARS_PER_WORD: int = 5

PARAGRAPH_SEPARATOR = "\n\n"
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class ChunkOptions:
    """Chunk sizing, in characters."""

    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    overlap_size: int = DEFAULT_OVERLAP_SIZE
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE


class TextChunker:
    """
    Splits text into overlapping paragraph-aligned Chunks.

    Usage::

        chunker = TextChunker(ChunkOptions(max_chunk_size=4000))
        chunks = chunker.split(document.id, document.full_text)
        # Each chunk has: chunk_index, content, start/end positions, metadata

    Args:
        options: Chunk sizing. Defaults to 8000/400/500.
    """

    def __init__(self, options: ChunkOptions | None = None) -> None:
        options = options or ChunkOptions()
        if options.max_chunk_size <= 0:
            raise ValueError(
                f"max_chunk_size must be positive, got {options.max_chunk_size}"
            )
        if options.overlap_size < 0 or options.overlap_size >= options.max_chunk_size:
            raise ValueError(
                f"overlap_size ({options.overlap_size}) must be in "
                f"[0, max_chunk_size ({options.max_chunk_size}))"
            )
        self._options = options

    @property
    def options(self) -> ChunkOptions:
        """Active chunk sizing."""
        return self._options

    def split(self, document_id: UUID, text: str) -> list[Chunk]:
        """Split a document's text, stamping every chunk with its owner."""
        chunks = [
            chunk.model_copy(update={"document_id": document_id})
            for chunk in self.split_text(text)
        ]
        logger.info(
            "Split document %s into %d chunks (max=%d, overlap=%d, min=%d)",
            document_id,
            len(chunks),
            self._options.max_chunk_size,
            self._options.overlap_size,
            self._options.min_chunk_size,
        )
        return chunks

    def split_text(self, text: str) -> list[Chunk]:
        """
        Split raw text into ordered Chunks.

        Returns:
            Chunks with contiguous indices starting at 0. Empty or
            whitespace-only text yields an empty list.
        """
        if not text or not text.strip():
            return []

        opts = self._options
        paragraphs = [p for p in _PARAGRAPH_SPLIT.split(text) if p.strip()]

        chunks: list[Chunk] = []
        current = ""
        current_overlap = 0
        position = 0
        chunk_start = 0

        for paragraph in paragraphs:
            trimmed = paragraph.strip()

            if not current:
                current = trimmed
                chunk_start = position
            elif len(current) + len(trimmed) + len(PARAGRAPH_SEPARATOR) <= opts.max_chunk_size:
                current += PARAGRAPH_SEPARATOR + trimmed
            else:
                chunks.append(
                    self._make_chunk(
                        len(chunks), current, chunk_start, position, current_overlap
                    )
                )
                overlap = self._overlap_tail(current)
                current = (
                    overlap + PARAGRAPH_SEPARATOR + trimmed if overlap else trimmed
                )
                current_overlap = len(overlap)
                chunk_start = max(position - len(overlap), 0)

            position += len(paragraph) + len(PARAGRAPH_SEPARATOR)

        if len(current.strip()) >= opts.min_chunk_size:
            chunks.append(
                self._make_chunk(
                    len(chunks), current, chunk_start, len(text), current_overlap
                )
            )
        elif current.strip():
            logger.debug(
                "Dropped trailing fragment of %d chars (min=%d)",
                len(current.strip()),
                opts.min_chunk_size,
            )

        return chunks

    def _overlap_tail(self, chunk_text: str) -> str:
        """Trailing words of ``chunk_text`` worth roughly ``overlap_size`` chars."""
        word_count = self._options.overlap_size // CHARS_PER_WORD
        if word_count == 0:
            return ""
        return " ".join(chunk_text.split(" ")[-word_count:])

    @staticmethod
    def _make_chunk(
        index: int,
        content: str,
        start: int,
        end: int,
        overlap_chars: int,
    ) -> Chunk:
        content = content.strip()
        return Chunk(
            chunk_index=index,
            content=content,
            start_position=start,
            end_position=max(end, start),
            metadata={
                "chunk_size": len(content),
                "overlap_chars": overlap_chars,
            },
        )
