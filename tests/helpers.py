"""
Shared test helpers: fake OpenAI embeddings API and result builders.
"""

from __future__ import annotations

import uuid
from types import SimpleNamespace

from docvault.models.orm import EMBEDDING_DIMENSION
from docvault.models.schemas import RelevanceType, SearchResult


def unit_vector(axis: int = 0, dim: int = EMBEDDING_DIMENSION) -> list[float]:
    """One-hot vector of the embedding dimension."""
    vector = [0.0] * dim
    vector[axis] = 1.0
    return vector


def make_result(
    content: str,
    score: float,
    relevance_type: RelevanceType = RelevanceType.SEMANTIC,
    *,
    chunk_id: uuid.UUID | None = None,
    document_id: uuid.UUID | None = None,
    document_name: str = "report.pdf",
    chunk_index: int = 0,
) -> SearchResult:
    """Build a SearchResult with sensible defaults."""
    return SearchResult(
        chunk_id=chunk_id or uuid.uuid4(),
        document_id=document_id or uuid.uuid4(),
        document_name=document_name,
        content=content,
        chunk_index=chunk_index,
        score=score,
        relevance_type=relevance_type,
    )


class FakeEmbeddingsAPI:
    """
    Stand-in for ``AsyncOpenAI().embeddings``.

    Records every ``create`` call. ``errors`` is consumed in order: an
    exception entry is raised for that call, ``None`` lets it succeed.
    """

    def __init__(self, errors: list[Exception | None] | None = None) -> None:
        self.calls: list[list[str]] = []
        self._errors = list(errors or [])

    async def create(self, *, model: str, input: list[str], encoding_format: str):
        self.calls.append(list(input))
        if self._errors:
            error = self._errors.pop(0)
            if error is not None:
                raise error
        data = [
            SimpleNamespace(index=i, embedding=unit_vector(i % EMBEDDING_DIMENSION))
            for i in range(len(input))
        ]
        return SimpleNamespace(
            data=data,
            model=model,
            usage=SimpleNamespace(total_tokens=10 * len(input)),
        )
