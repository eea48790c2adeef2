"""
Domain Exceptions

Error taxonomy for the retrieval pipeline. Services raise these at their
boundary; the API layer maps them to HTTP responses
(see ``docvault.api.v1.errors``).
"""

from __future__ import annotations

from uuid import UUID


class DocVaultError(Exception):
    """Base class for docvault errors."""

    def __init__(self, message: str, document_id: UUID | None = None) -> None:
        self.message = message
        self.document_id = document_id
        super().__init__(self.message)


class ConfigurationError(DocVaultError):
    """Raised when required credentials or settings are missing."""


class DocumentNotFoundError(DocVaultError):
    """Raised when a document does not exist."""


class EmptyContentError(DocVaultError):
    """Raised when a document has neither full text nor preview text to process."""


class UnsupportedFileTypeError(DocVaultError):
    """Raised when no text extractor handles the uploaded file type."""


class EmbeddingError(DocVaultError):
    """Raised when the embedding provider returns an unusable response."""


class DimensionMismatchError(ValueError):
    """Raised when vectors of different dimensionality are compared."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimensions must match (expected {expected}, got {actual})"
        )
