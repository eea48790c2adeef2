"""
Context Budgeting

Assembles the document context handed to the language model.

Two modes:
    - Ranked chunks: preamble + chunks in rank order, first-fit until
      the next chunk would overflow ``max_tokens - reserved_tokens``.
      No reordering and no backfilling with smaller chunks.
    - Full document: the text is passed through untouched; the caller
      owns the budget decision in this mode.

Token counts come from ``estimate_tokens``, a deliberately cheap
heuristic rather than a real tokenizer.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, Protocol

from docvault.services.context_config import DEFAULT_CONFIG, ContextBudgetConfig

logger = logging.getLogger(__name__)

CONTEXT_PREAMBLE: Final[str] = (
    "You are a professional document analysis assistant. "
    "Answer the user's question based on the following document excerpts.\n\n"
)
CONTEXT_CLOSING: Final[str] = (
    "Answer the user's question accurately based on the document content above. "
    "If the documents do not contain the relevant information, say so explicitly."
    "\n\nThis context uses approximately {tokens} tokens."
)
EMPTY_CONTEXT_MARKER: Final[str] = "No relevant document content was found."

_CJK_CHAR = re.compile(r"[一-龥]")
_ASCII_WORD = re.compile(r"[a-zA-Z]+")

CJK_TOKEN_WEIGHT = 1.5
WORD_TOKEN_WEIGHT = 1.3
OTHER_TOKEN_WEIGHT = 0.5
# Characters attributed to each ASCII word when counting the remainder
WORD_CHARS = 5


def estimate_tokens(text: str) -> int:
    """
    Approximate token count of ``text``.

    CJK characters weigh 1.5, ASCII words 1.3 and every remaining
    character 0.5. The remainder assumes 5 characters per ASCII word and
    never goes below zero.
    """
    cjk_chars = len(_CJK_CHAR.findall(text))
    words = len(_ASCII_WORD.findall(text))
    other_chars = max(len(text) - cjk_chars - words * WORD_CHARS, 0)
    return math.ceil(
        cjk_chars * CJK_TOKEN_WEIGHT
        + words * WORD_TOKEN_WEIGHT
        + other_chars * OTHER_TOKEN_WEIGHT
    )


class RankedChunk(Protocol):
    """Anything with chunk text and a position: ``Chunk`` or ``SearchResult``."""

    content: str
    chunk_index: int


@dataclass
class AssembledContext:
    """Result of a ranked-chunk assembly."""

    text: str
    tokens: int
    chunks_included: int
    chunks_dropped: int


class ContextBudgeter:
    """
    Builds prompt context strings within a model's token budget.

    Usage::

        budgeter = ContextBudgeter(select_config("gpt-4o-mini", len(text)))
        context = budgeter.build_context(results)
    """

    def __init__(self, config: ContextBudgetConfig | None = None) -> None:
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> ContextBudgetConfig:
        return self._config

    def assemble(
        self,
        ranked_chunks: Sequence[RankedChunk],
        max_tokens: int | None = None,
    ) -> AssembledContext:
        """
        First-fit assembly of ranked chunks.

        Args:
            ranked_chunks: Chunks in rank order (best first).
            max_tokens: Overrides the configured ``max_tokens``.
        """
        if not ranked_chunks:
            return AssembledContext(
                text=EMPTY_CONTEXT_MARKER,
                tokens=estimate_tokens(EMPTY_CONTEXT_MARKER),
                chunks_included=0,
                chunks_dropped=0,
            )

        budget = (
            max_tokens if max_tokens is not None else self._config.max_tokens
        ) - self._config.reserved_tokens

        parts = [CONTEXT_PREAMBLE]
        tokens = estimate_tokens(CONTEXT_PREAMBLE)
        included = 0

        for chunk in ranked_chunks:
            block = _format_chunk(chunk)
            block_tokens = estimate_tokens(block)
            if tokens + block_tokens > budget:
                break
            parts.append(block)
            tokens += block_tokens
            included += 1

        parts.append(CONTEXT_CLOSING.format(tokens=tokens))
        dropped = len(ranked_chunks) - included
        if dropped:
            logger.info(
                "Context budget reached: %d/%d chunks included (%d/%d tokens)",
                included,
                len(ranked_chunks),
                tokens,
                budget,
            )

        return AssembledContext(
            text="".join(parts),
            tokens=tokens,
            chunks_included=included,
            chunks_dropped=dropped,
        )

    def build_context(
        self,
        ranked_chunks: Sequence[RankedChunk],
        max_tokens: int | None = None,
    ) -> str:
        """Context string for ranked chunks (see ``assemble``)."""
        return self.assemble(ranked_chunks, max_tokens).text

    @staticmethod
    def build_full_document_context(text: str) -> str:
        """Full-document mode: the text is returned unmodified."""
        return text


def _format_chunk(chunk: RankedChunk) -> str:
    document_name = getattr(chunk, "document_name", None)
    header = f"Document excerpt {chunk.chunk_index + 1}"
    if document_name:
        header += f" ({document_name})"
    return f"{header}:\n{chunk.content}\n\n"
