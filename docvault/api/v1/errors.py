"""
Service error handling for the API routers.

``handle_service_errors`` translates the domain exceptions raised by the
services into HTTPExceptions with consistent status codes:

    DocumentNotFoundError       -> 404
    EmptyContentError           -> 400
    ValueError                  -> 400
    UnsupportedFileTypeError    -> 422
    ConfigurationError          -> 500
    EmbeddingError, openai/httpx provider errors -> 502
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httpx
import openai
from fastapi import HTTPException, status

from docvault.core.exceptions import (
    ConfigurationError,
    DocumentNotFoundError,
    EmbeddingError,
    EmptyContentError,
    UnsupportedFileTypeError,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

UPSTREAM_ERRORS: tuple[type[Exception], ...] = (
    EmbeddingError,
    openai.OpenAIError,
    httpx.HTTPError,
)


def handle_service_errors(func: F) -> F:
    """Decorator mapping service exceptions of an async endpoint to HTTP errors."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except HTTPException:
            raise

        except DocumentNotFoundError as e:
            logger.warning("Document not found: %s", e.document_id)
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=e.message,
            ) from e

        except EmptyContentError as e:
            logger.warning("Empty content: %s", e.message)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=e.message,
            ) from e

        except UnsupportedFileTypeError as e:
            logger.warning("Rejected upload: %s", e.message)
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=e.message,
            ) from e

        except ConfigurationError as e:
            logger.error("Service misconfigured: %s", e.message)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=e.message,
            ) from e

        except UPSTREAM_ERRORS as e:
            logger.exception("Upstream provider failure")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Upstream provider error: {type(e).__name__}",
            ) from e

        except ValueError as e:
            logger.warning("Invalid request: %s", e)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from e

    return wrapper  # type: ignore[return-value]
