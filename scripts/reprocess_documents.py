#!/usr/bin/env python3
"""
Reprocess Documents Script

Chunks and embeds parsed documents in bulk, e.g. after changing the
chunking presets or the embedding model.

Usage:
    Requires the database and OPENAI_API_KEY:
    $ python scripts/reprocess_documents.py            # unprocessed documents only
    $ python scripts/reprocess_documents.py --all      # every parsed document
    $ python scripts/reprocess_documents.py --model gpt-4 --reembed
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import httpx
import openai
from sqlalchemy import select

from docvault.core.database import dispose_engine, get_session_factory
from docvault.core.exceptions import DocVaultError
from docvault.core.logging import setup_logging
from docvault.models.orm import DocumentRecord, ParseStatus
from docvault.repositories.index import ChunkIndex
from docvault.services.embeddings import EmbeddingService
from docvault.services.hybrid_search import HybridSearchService
from docvault.services.pipeline import RAGPipeline

logger = logging.getLogger("docvault.scripts.reprocess")

# Per-document failures; anything else aborts the run
SKIPPABLE_ERRORS: tuple[type[Exception], ...] = (
    DocVaultError,
    openai.OpenAIError,
    httpx.HTTPError,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chunk and embed stored documents")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Reprocess every parsed document, not only unprocessed ones",
    )
    parser.add_argument(
        "--reembed",
        action="store_true",
        help="Re-embed existing chunks instead of re-chunking",
    )
    parser.add_argument("--model", default=None, help="Target chat model for chunk sizing")
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    """Process the selected documents one by one. Returns the failure count."""
    try:
        return await _reprocess(args)
    finally:
        await dispose_engine()


async def _reprocess(args: argparse.Namespace) -> int:
    factory = get_session_factory()
    embedder = EmbeddingService()
    pipeline = RAGPipeline(
        embedder=embedder,
        search_service=HybridSearchService(embedder, ChunkIndex(factory)),
    )

    stmt = select(DocumentRecord.id).where(
        DocumentRecord.parse_status == ParseStatus.COMPLETED.value
    )
    if not args.all:
        stmt = stmt.where(DocumentRecord.processed_for_embedding.is_(False))

    async with factory() as session:
        document_ids = list((await session.execute(stmt)).scalars().all())
    logger.info("Reprocessing %d documents", len(document_ids))

    failures = 0
    total_tokens = 0
    for i, document_id in enumerate(document_ids, 1):
        async with factory() as session:
            try:
                result = await pipeline.process_document(
                    session,
                    document_id,
                    skip_chunking=args.reembed,
                    model_name=args.model,
                )
            except SKIPPABLE_ERRORS as e:
                failures += 1
                logger.warning("[%d/%d] %s skipped: %s", i, len(document_ids), document_id, e)
                continue

        total_tokens += result.tokens_used
        logger.info(
            "[%d/%d] %s: %d chunks (-%d), %d tokens",
            i,
            len(document_ids),
            document_id,
            result.chunks_created,
            result.chunks_deleted,
            result.tokens_used,
        )

    logger.info(
        "Done: %d processed, %d skipped, %d tokens",
        len(document_ids) - failures,
        failures,
        total_tokens,
    )
    return failures


if __name__ == "__main__":
    setup_logging()
    raise SystemExit(1 if asyncio.run(main(parse_args())) else 0)
