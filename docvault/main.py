"""
docvault — Application Entry Point

FastAPI application for document upload, hybrid retrieval and
context-grounded answering.

Start locally:
    uvicorn docvault.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docvault import __version__
from docvault.api.v1.documents import router as documents_router
from docvault.api.v1.search import router as search_router
from docvault.core.config import settings
from docvault.core.database import dispose_engine, verify_connection
from docvault.core.logging import setup_logging

# Initialize logging before any log statements
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        Validate database connectivity (blocks startup on failure).

    Shutdown:
        Dispose the database engine.
    """
    logger.info("Starting %s...", settings.PROJECT_NAME)

    try:
        await verify_connection()
        logger.info("Database connection verified")
    except Exception:
        logger.exception("Database connection failed")
        raise

    yield

    await dispose_engine()
    logger.info("%s shutdown complete", settings.PROJECT_NAME)


app = FastAPI(
    title="docvault",
    description="Document upload, hybrid (semantic + keyword) retrieval and RAG answering.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(documents_router, prefix="/api/v1/documents", tags=["Documents"])
app.include_router(search_router, prefix="/api/v1", tags=["Search"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check for load balancers and orchestrators."""
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "llm_provider": settings.LLM_PROVIDER,
    }
