from docvault.repositories.base import BaseRepository
from docvault.repositories.documents import DocumentRepository, document_repository
from docvault.repositories.index import ChunkIndex

__all__ = [
    "BaseRepository",
    "ChunkIndex",
    "DocumentRepository",
    "document_repository",
]
