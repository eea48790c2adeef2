"""
Context budget presets per language model, adapted to document size.

Long documents get larger chunks and overlap (capped); short documents
get smaller ones (floored) for tighter matching.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from docvault.services.chunking import ChunkOptions

LARGE_DOCUMENT_CHARS = 100_000
SMALL_DOCUMENT_CHARS = 10_000

MAX_ADAPTED_CHUNK_SIZE = 12_000
MAX_ADAPTED_OVERLAP = 600
MIN_ADAPTED_CHUNK_SIZE = 2_000
MIN_ADAPTED_OVERLAP = 200


@dataclass(frozen=True)
class ContextBudgetConfig:
    """
    Token budget and chunking parameters for one model.

    Attributes:
        max_tokens: Total context tokens the assembler may use.
        reserved_tokens: Headroom for instructions, question and reply.
        max_chunk_size: Largest chunk, in characters.
        overlap_size: Overlap between consecutive chunks, in characters.
        min_chunk_size: Smallest trailing chunk kept, in characters.
        max_relevant_chunks: Upper bound of chunks retrieved per question.
    """

    max_tokens: int
    reserved_tokens: int
    max_chunk_size: int
    overlap_size: int
    min_chunk_size: int
    max_relevant_chunks: int

    @property
    def available_tokens(self) -> int:
        return self.max_tokens - self.reserved_tokens

    def chunk_options(self) -> ChunkOptions:
        return ChunkOptions(
            max_chunk_size=self.max_chunk_size,
            overlap_size=self.overlap_size,
            min_chunk_size=self.min_chunk_size,
        )


# 128K context; leaves ~32K for the reply
GPT4O_MINI_CONFIG = ContextBudgetConfig(
    max_tokens=96_000,
    reserved_tokens=4_000,
    max_chunk_size=8_000,
    overlap_size=400,
    min_chunk_size=500,
    max_relevant_chunks=12,
)

GPT4_TURBO_CONFIG = ContextBudgetConfig(
    max_tokens=64_000,
    reserved_tokens=4_000,
    max_chunk_size=6_000,
    overlap_size=300,
    min_chunk_size=400,
    max_relevant_chunks=10,
)

CLAUDE3_CONFIG = ContextBudgetConfig(
    max_tokens=80_000,
    reserved_tokens=5_000,
    max_chunk_size=7_000,
    overlap_size=350,
    min_chunk_size=450,
    max_relevant_chunks=11,
)

# Checked in order: "gpt-4o-mini" must win over the broader "gpt-4"
MODEL_PRESETS: tuple[tuple[str, ContextBudgetConfig], ...] = (
    ("gpt-4o-mini", GPT4O_MINI_CONFIG),
    ("gpt-4", GPT4_TURBO_CONFIG),
    ("claude-3", CLAUDE3_CONFIG),
)

DEFAULT_CONFIG = GPT4O_MINI_CONFIG


def get_context_config(model_name: str) -> ContextBudgetConfig:
    """Base preset for a model name; unknown models get the gpt-4o-mini preset."""
    for fragment, config in MODEL_PRESETS:
        if fragment in model_name:
            return config
    return DEFAULT_CONFIG


def select_config(model_name: str, total_text_length: int) -> ContextBudgetConfig:
    """
    Preset for ``model_name`` adapted to the document length (in chars).

    Pure: the same inputs always produce the same configuration.
    """
    base = get_context_config(model_name)

    if total_text_length > LARGE_DOCUMENT_CHARS:
        return replace(
            base,
            max_chunk_size=round(min(base.max_chunk_size * 1.5, MAX_ADAPTED_CHUNK_SIZE)),
            overlap_size=round(min(base.overlap_size * 1.2, MAX_ADAPTED_OVERLAP)),
        )

    if total_text_length < SMALL_DOCUMENT_CHARS:
        return replace(
            base,
            max_chunk_size=round(max(base.max_chunk_size * 0.7, MIN_ADAPTED_CHUNK_SIZE)),
            overlap_size=round(max(base.overlap_size * 0.8, MIN_ADAPTED_OVERLAP)),
        )

    return base
