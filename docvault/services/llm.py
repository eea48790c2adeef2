"""
LLM Service

Streams answers from a chat model grounded in assembled document context.

Providers:
    - openai: Chat Completions API with ``stream=True`` (AsyncOpenAI).
    - ollama: Local Ollama server, ``/api/generate`` streamed as
      newline-delimited JSON over httpx.

Every call carries a timeout. Provider errors propagate to the caller;
the API layer decides how to report them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Final

import httpx
from openai import AsyncOpenAI

from docvault.core.config import settings
from docvault.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS: Final[frozenset[str]] = frozenset({"openai", "ollama"})

SYSTEM_PROMPT: Final[str] = (
    "You are a document analysis assistant. "
    "Answer questions based on the following document content:\n\n{context}"
)


class LLMService:
    """
    Async streaming client for the answer-generating model.

    Usage::

        service = LLMService()
        async for fragment in service.stream_completion(context, "Summarize this"):
            print(fragment, end="")

    Args:
        client: Pre-configured ``AsyncOpenAI`` client (openai provider).
        provider: ``"openai"`` or ``"ollama"`` (default from config).
        model: Default model name (default from config).
        timeout: Request timeout in seconds (default from config).
        transport: Optional httpx transport for the Ollama client.

    Raises:
        ConfigurationError: On an unknown provider, or when the openai
            provider has neither a client nor an API key.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        ollama_base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider = (provider or settings.LLM_PROVIDER).lower()
        if self._provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported LLM provider: '{self._provider}'. "
                f"Supported: {', '.join(sorted(SUPPORTED_PROVIDERS))}"
            )

        self._model = model or settings.LLM_MODEL
        self._timeout = timeout or settings.LLM_TIMEOUT
        self._ollama_base_url = (ollama_base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self._transport = transport

        if self._provider == "openai" and client is None:
            key = api_key if api_key is not None else settings.OPENAI_API_KEY
            if not key:
                raise ConfigurationError("OPENAI_API_KEY is not configured")
            client = AsyncOpenAI(
                api_key=key,
                base_url=settings.OPENAI_BASE_URL,
                timeout=self._timeout,
                max_retries=0,
            )
        self._client = client

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def model(self) -> str:
        return self._model

    async def stream_completion(
        self,
        system_context: str,
        user_message: str,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream the answer to ``user_message`` as text fragments.

        Empty fragments are skipped.
        """
        model = model or self._model
        logger.info(
            "Streaming completion (provider=%s, model=%s, context=%d chars, message=%d chars)",
            self._provider,
            model,
            len(system_context),
            len(user_message),
        )

        if self._provider == "ollama":
            stream = self._stream_ollama(system_context, user_message, model)
        else:
            stream = self._stream_openai(system_context, user_message, model)

        fragments = 0
        async for fragment in stream:
            if fragment:
                fragments += 1
                yield fragment

        logger.info("Completion stream finished (%d fragments)", fragments)

    async def _stream_openai(
        self,
        system_context: str,
        user_message: str,
        model: str,
    ) -> AsyncIterator[str]:
        assert self._client is not None
        stream = await self._client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT.format(context=system_context)},
                {"role": "user", "content": user_message},
            ],
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            yield chunk.choices[0].delta.content or ""

    async def _stream_ollama(
        self,
        system_context: str,
        user_message: str,
        model: str,
    ) -> AsyncIterator[str]:
        """
        Stream from Ollama's generate endpoint.

        Raises:
            httpx.HTTPStatusError: If the server answers with an error status.
        """
        url = f"{self._ollama_base_url}/api/generate"
        payload = {
            "model": model,
            "system": SYSTEM_PROMPT.format(context=system_context),
            "prompt": user_message,
            "stream": True,
        }

        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            async with client.stream("POST", url, json=payload) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    yield data.get("response", "")
                    if data.get("done"):
                        break
