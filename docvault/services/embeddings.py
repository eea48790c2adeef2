"""
Embedding Service

Remote embedding generation via the OpenAI Embeddings API
(text-embedding-3-small, 1536 dimensions).

Design choices:
    - The ``AsyncOpenAI`` client is injected (or built from settings), so
      tests substitute a fake without patching module globals.
    - Batches of 5 texts are sent sequentially with a short pause between
      them to stay under the provider's rate limits.
    - A "maximum context length" rejection degrades to one-by-one
      requests, then to a single retry on text truncated to 6000 chars.
      Every other provider error propagates to the caller.
    - SDK-level retries are disabled; each request carries a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import openai
from openai import AsyncOpenAI

from docvault.core.config import settings
from docvault.core.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    EmbeddingError,
)
from docvault.models.orm import EMBEDDING_DIMENSION

logger = logging.getLogger(__name__)

CONTEXT_LENGTH_MARKER = "maximum context length"


@dataclass
class EmbeddingResult:
    """Embedding of a single text."""

    vector: list[float]
    model: str
    tokens_used: int


@dataclass
class EmbeddingBatch:
    """
    Embeddings for a list of texts, in input order.

    ``tokens_used`` is the sum of the usage reported by every request
    made to produce the batch (fallback requests included).
    """

    vectors: list[list[float]]
    model: str
    tokens_used: int


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors, in [-1, 1].

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(len(vec_a), len(vec_b))

    dot = math.fsum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(math.fsum(a * a for a in vec_a))
    norm_b = math.sqrt(math.fsum(b * b for b in vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def is_context_length_error(exc: BaseException) -> bool:
    """True if the provider rejected the input for exceeding the model context."""
    return isinstance(exc, openai.BadRequestError) and CONTEXT_LENGTH_MARKER in str(
        exc
    )


class EmbeddingService:
    """
    Async client for the remote embedding model.

    Usage::

        service = EmbeddingService()
        query = await service.embed_one("quarterly revenue")
        batch = await service.embed_many([c.content for c in chunks])
        assert len(batch.vectors) == len(chunks)

    Args:
        client: Pre-configured ``AsyncOpenAI`` client. Built from settings
            when omitted.
        api_key: Overrides ``OPENAI_API_KEY`` when building the client.

    Raises:
        ConfigurationError: If no client is given and no API key is set.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        api_key: str | None = None,
        model: str | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        truncate_chars: int | None = None,
        timeout: float | None = None,
    ) -> None:
        if client is None:
            key = api_key if api_key is not None else settings.OPENAI_API_KEY
            if not key:
                raise ConfigurationError("OPENAI_API_KEY is not configured")
            client = AsyncOpenAI(
                api_key=key,
                base_url=settings.OPENAI_BASE_URL,
                timeout=timeout or settings.EMBEDDING_TIMEOUT,
                max_retries=0,
            )

        self._client = client
        self._model = model or settings.EMBEDDING_MODEL
        self._batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self._batch_delay = (
            settings.EMBEDDING_BATCH_DELAY if batch_delay is None else batch_delay
        )
        self._truncate_chars = truncate_chars or settings.EMBEDDING_TRUNCATE_CHARS

    @property
    def model(self) -> str:
        return self._model

    async def embed_one(self, text: str) -> EmbeddingResult:
        """
        Embed a single text (typically a search query).

        Raises:
            ValueError: If the text is empty after stripping.
        """
        text = text.strip()
        if not text:
            raise ValueError("Cannot embed empty text")

        vector, model, tokens = await self._embed_single(text)
        return EmbeddingResult(vector=vector, model=model, tokens_used=tokens)

    async def embed_many(self, texts: Sequence[str]) -> EmbeddingBatch:
        """
        Embed many texts, batch by batch, preserving input order.

        Batches run sequentially; the pause between them is backpressure
        against the provider's rate limit.
        """
        vectors: list[list[float]] = []
        model = self._model
        total_tokens = 0

        if not texts:
            return EmbeddingBatch(vectors=vectors, model=model, tokens_used=0)

        batch_count = math.ceil(len(texts) / self._batch_size)
        for batch_no, start in enumerate(range(0, len(texts), self._batch_size), 1):
            batch = list(texts[start : start + self._batch_size])
            logger.info(
                "Embedding batch %d/%d (%d texts)", batch_no, batch_count, len(batch)
            )

            try:
                batch_vectors, model, tokens = await self._create(batch)
                vectors.extend(batch_vectors)
                total_tokens += tokens
            except openai.BadRequestError as exc:
                if not is_context_length_error(exc):
                    raise
                logger.warning(
                    "Batch %d exceeds the model context, embedding texts one by one",
                    batch_no,
                )
                for text in batch:
                    vector, model, tokens = await self._embed_single(text)
                    vectors.append(vector)
                    total_tokens += tokens

            if start + self._batch_size < len(texts):
                await asyncio.sleep(self._batch_delay)

        logger.info(
            "Embedded %d texts in %d batches (%d tokens)",
            len(vectors),
            batch_count,
            total_tokens,
        )
        return EmbeddingBatch(vectors=vectors, model=model, tokens_used=total_tokens)

    async def _embed_single(self, text: str) -> tuple[list[float], str, int]:
        """Embed one text, truncating and retrying once if it is too long."""
        try:
            vectors, model, tokens = await self._create([text])
        except openai.BadRequestError as exc:
            if not is_context_length_error(exc):
                raise
            truncated = text[: self._truncate_chars]
            logger.warning(
                "Text too long for embedding model, truncating %d -> %d chars",
                len(text),
                len(truncated),
            )
            vectors, model, tokens = await self._create([truncated])
        return vectors[0], model, tokens

    async def _create(self, inputs: list[str]) -> tuple[list[list[float]], str, int]:
        """Single embeddings request. Returns (vectors, model, total_tokens)."""
        response: Any = await self._client.embeddings.create(
            model=self._model,
            input=inputs,
            encoding_format="float",
        )

        items = sorted(response.data, key=lambda item: item.index)
        if len(items) != len(inputs):
            raise EmbeddingError(
                f"Embedding provider returned {len(items)} vectors "
                f"for {len(inputs)} inputs"
            )

        vectors = [list(item.embedding) for item in items]
        for vector in vectors:
            if len(vector) != EMBEDDING_DIMENSION:
                raise DimensionMismatchError(EMBEDDING_DIMENSION, len(vector))

        usage = getattr(response, "usage", None)
        tokens = usage.total_tokens if usage is not None else 0
        return vectors, response.model, tokens
