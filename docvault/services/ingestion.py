"""
Document Ingestion Service

Text extraction for uploaded files. Computes SHA-256 hashes for
duplicate detection and builds the preview stored next to the full text.

Supported formats:
    - PDF (.pdf): Text extraction via PyMuPDF (fitz)
    - Markdown / plain text (.md, .markdown, .txt): UTF-8 decoding
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Final

import fitz  # PyMuPDF

from docvault.core.config import settings
from docvault.core.exceptions import UnsupportedFileTypeError

logger = logging.getLogger(__name__)

MIME_TYPES: Final[dict[str, str]] = {
    ".pdf": "application/pdf",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".txt": "text/plain",
}
SUPPORTED_EXTENSIONS: Final[frozenset[str]] = frozenset(MIME_TYPES)


@dataclass
class ExtractedText:
    """
    Text pulled out of an uploaded file.

    Attributes:
        full_text: Complete extracted text.
        preview_text: First ``PREVIEW_LENGTH`` characters of the text.
        page_count: Number of pages (PDF only).
    """

    full_text: str
    preview_text: str
    page_count: int | None = None


def compute_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def make_preview(text: str, length: int | None = None) -> str:
    """Leading characters of ``text`` used as its preview."""
    return text[: length or settings.PREVIEW_LENGTH]


def detect_mime_type(filename: str) -> str:
    """
    MIME type from the file extension.

    Raises:
        UnsupportedFileTypeError: If no extractor handles the extension.
    """
    suffix = PurePath(filename).suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileTypeError(
            f"Unsupported file type: '{suffix or filename}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )
    return MIME_TYPES[suffix]


class FileProcessor:
    """
    Async text extractor for uploaded documents.

    Blocking work (PDF parsing) is offloaded to a thread pool via
    ``asyncio.to_thread``.

    Usage::

        processor = FileProcessor()
        extracted = await processor.extract("report.pdf", raw)
        print(extracted.page_count, extracted.preview_text)
    """

    def __init__(self, preview_length: int | None = None) -> None:
        self._preview_length = preview_length or settings.PREVIEW_LENGTH

    async def extract(self, filename: str, raw: bytes) -> ExtractedText:
        """
        Extract text from the raw bytes of ``filename``.

        Raises:
            UnsupportedFileTypeError: If the extension is not supported.
            UnicodeDecodeError: If a text file is not valid UTF-8.
        """
        mime_type = detect_mime_type(filename)

        if mime_type == "application/pdf":
            content, page_count = await asyncio.to_thread(self._extract_pdf_content, raw)
            logger.info(
                "Extracted PDF: %s (%d pages, %d bytes)",
                filename,
                page_count,
                len(raw),
            )
        else:
            content, page_count = raw.decode("utf-8"), None
            logger.info("Extracted text: %s (%d bytes)", filename, len(raw))

        # PostgreSQL TEXT columns reject NUL characters
        content = content.replace("\x00", "")

        return ExtractedText(
            full_text=content,
            preview_text=make_preview(content, self._preview_length),
            page_count=page_count,
        )

    @staticmethod
    def _extract_pdf_content(raw: bytes) -> tuple[str, int]:
        """
        Extract text and page count from PDF bytes.

        Synchronous; always call via ``asyncio.to_thread``.
        """
        doc = fitz.open(stream=raw, filetype="pdf")
        try:
            pages: list[str] = [page.get_text() for page in doc]
            return "\n".join(pages), len(pages)
        finally:
            doc.close()
