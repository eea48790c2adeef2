"""
RAG Pipeline Unit Tests

Tests for document processing, the context fallback chain and answer
streaming, with a mocked repository, a fake embeddings API and a fake
LLM. No database or network required.
"""

from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from docvault.core.exceptions import DocumentNotFoundError, EmptyContentError
from docvault.models.orm import ChunkRecord
from docvault.services.context import CONTEXT_PREAMBLE, EMPTY_CONTEXT_MARKER
from docvault.services.embeddings import EmbeddingService
from docvault.services.hybrid_search import SearchOptions
from docvault.services.pipeline import ContextMode, ContextSource, RAGPipeline
from tests.helpers import FakeEmbeddingsAPI, make_result

DOCUMENT_TEXT = "\n\n".join(
    f"Paragraph {i} describes the quarterly invoice totals in some detail." for i in range(40)
)


def _document(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid.uuid4(),
        "name": "report.pdf",
        "full_text": DOCUMENT_TEXT,
        "preview_text": DOCUMENT_TEXT[:500],
        "chunk_count": 0,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _repository(document: SimpleNamespace | None) -> MagicMock:
    repository = MagicMock()
    repository.get_by_id = AsyncMock(return_value=document)
    repository.get_chunks = AsyncMock(return_value=[])
    repository.replace_chunks = AsyncMock(return_value=0)
    repository.update_embeddings = AsyncMock()
    return repository


class FakeLLM:
    """Records the context it receives and replays fixed fragments."""

    def __init__(self, fragments: list[str]) -> None:
        self.fragments = fragments
        self.calls: list[tuple[str, str, str | None]] = []

    async def stream_completion(self, system_context, user_message, model=None):
        self.calls.append((system_context, user_message, model))
        for fragment in self.fragments:
            yield fragment


def _pipeline(repository, api=None, search_service=None, llm=None) -> RAGPipeline:
    api = api or FakeEmbeddingsAPI()
    embedder = EmbeddingService(SimpleNamespace(embeddings=api), batch_delay=0)
    return RAGPipeline(
        embedder=embedder,
        search_service=search_service or MagicMock(),
        repository=repository,
        llm=llm,
    )


# ---------------------------------------------------------------------------
# process_document
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_process_document_replaces_chunks(mock_session):
    document = _document()
    repository = _repository(document)
    repository.replace_chunks.return_value = 2
    api = FakeEmbeddingsAPI()

    result = await _pipeline(repository, api).process_document(mock_session, document.id)

    assert result.chunks_created == 1
    assert result.chunks_deleted == 2
    assert result.embeddings_processed == 1
    assert result.tokens_used == 10
    assert result.is_preview_content is False

    session, document_id, records = repository.replace_chunks.await_args.args
    assert session is mock_session
    assert document_id == document.id
    assert all(isinstance(record, ChunkRecord) for record in records)
    assert records[0].document_id == document.id
    assert len(records[0].embedding) == 1536
    assert api.calls == [[records[0].content]]


@pytest.mark.asyncio
async def test_process_document_falls_back_to_preview(mock_session):
    document = _document(full_text=None, preview_text=DOCUMENT_TEXT[:1500])
    repository = _repository(document)

    result = await _pipeline(repository).process_document(mock_session, document.id)

    assert result.is_preview_content is True
    assert result.chunks_created == 1


@pytest.mark.asyncio
async def test_process_document_without_content_raises(mock_session):
    document = _document(full_text=None, preview_text="   ")
    repository = _repository(document)
    api = FakeEmbeddingsAPI()

    with pytest.raises(EmptyContentError):
        await _pipeline(repository, api).process_document(mock_session, document.id)

    assert api.calls == []
    repository.replace_chunks.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_missing_document_raises(mock_session):
    with pytest.raises(DocumentNotFoundError):
        await _pipeline(_repository(None)).process_document(mock_session, uuid.uuid4())


@pytest.mark.asyncio
async def test_embedding_failure_keeps_previous_chunks(mock_session):
    document = _document(chunk_count=3)
    repository = _repository(document)
    api = FakeEmbeddingsAPI(errors=[RuntimeError("provider down")])

    with pytest.raises(RuntimeError):
        await _pipeline(repository, api).process_document(mock_session, document.id)

    repository.replace_chunks.assert_not_awaited()


@pytest.mark.asyncio
async def test_skip_chunking_reembeds_existing_chunks(mock_session):
    document = _document(chunk_count=2)
    existing = [
        SimpleNamespace(id=uuid.uuid4(), content="first chunk"),
        SimpleNamespace(id=uuid.uuid4(), content="second chunk"),
    ]
    repository = _repository(document)
    repository.get_chunks.return_value = existing

    result = await _pipeline(repository).process_document(
        mock_session, document.id, skip_chunking=True
    )

    assert result.chunks_created == 0
    assert result.embeddings_processed == 2
    repository.replace_chunks.assert_not_awaited()
    vectors = repository.update_embeddings.await_args.args[2]
    assert set(vectors) == {chunk.id for chunk in existing}


@pytest.mark.asyncio
async def test_skip_chunking_without_chunks_chunks_anyway(mock_session):
    document = _document(chunk_count=0)
    repository = _repository(document)

    result = await _pipeline(repository).process_document(
        mock_session, document.id, skip_chunking=True
    )

    assert result.chunks_created == 1
    repository.update_embeddings.assert_not_awaited()


@pytest.mark.asyncio
async def test_short_text_yields_no_chunks(mock_session):
    document = _document(full_text="Too short to chunk.", preview_text=None)
    repository = _repository(document)

    result = await _pipeline(repository).process_document(mock_session, document.id)

    assert result.chunks_created == 0
    assert repository.replace_chunks.await_args.args[2] == []


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_uses_configured_defaults():
    search_service = MagicMock()
    search_service.search = AsyncMock(return_value=[])

    await _pipeline(_repository(None), search_service=search_service).search("invoice")

    query, options = search_service.search.await_args.args
    assert query == "invoice"
    assert options == SearchOptions.from_settings()


# ---------------------------------------------------------------------------
# build_context
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_context_prefers_full_text(mock_session):
    document = _document()

    result = await _pipeline(_repository(document)).build_context(
        mock_session, document.id, "gpt-4o-mini"
    )

    assert result.source is ContextSource.FULL_TEXT
    assert result.context == DOCUMENT_TEXT
    assert result.estimated_tokens > 0


@pytest.mark.asyncio
async def test_context_falls_back_to_preview(mock_session):
    document = _document(full_text=None, preview_text="Short preview text.")

    result = await _pipeline(_repository(document)).build_context(mock_session, document.id)

    assert result.source is ContextSource.PREVIEW
    assert result.context == "Short preview text."


@pytest.mark.asyncio
async def test_context_falls_back_to_stored_chunks(mock_session):
    document = _document(full_text=None, preview_text=None)
    repository = _repository(document)
    repository.get_chunks.return_value = [
        SimpleNamespace(content="stored chunk zero", chunk_index=0),
        SimpleNamespace(content="stored chunk one", chunk_index=1),
    ]

    result = await _pipeline(repository).build_context(mock_session, document.id)

    assert result.source is ContextSource.CHUNKS
    assert result.context.startswith(CONTEXT_PREAMBLE)
    assert "stored chunk one" in result.context


@pytest.mark.asyncio
async def test_context_empty_marker_when_nothing_available(mock_session):
    document = _document(full_text=None, preview_text=None)

    result = await _pipeline(_repository(document)).build_context(mock_session, document.id)

    assert result.source is ContextSource.EMPTY
    assert result.context == EMPTY_CONTEXT_MARKER


@pytest.mark.asyncio
async def test_rag_mode_searches_within_document(mock_session):
    document = _document()
    search_service = MagicMock()
    search_service.search = AsyncMock(
        return_value=[make_result("invoice total is 1,200 EUR", 0.9, document_id=document.id)]
    )
    pipeline = _pipeline(_repository(document), search_service=search_service)

    result = await pipeline.build_context(
        mock_session,
        document.id,
        "gpt-4o-mini",
        query="invoice total",
        mode=ContextMode.RAG,
    )

    assert result.source is ContextSource.CHUNKS
    assert "invoice total is 1,200 EUR" in result.context
    query, options = search_service.search.await_args.args
    assert query == "invoice total"
    assert options.document_ids == (document.id,)
    assert options.limit == result.config.max_relevant_chunks


@pytest.mark.asyncio
async def test_context_from_ranked_results(mock_session):
    repository = _repository(None)
    results = [make_result("ranked excerpt", 0.8)]

    result = await _pipeline(repository).build_context(mock_session, results, "gpt-4")

    assert result.source is ContextSource.CHUNKS
    assert "ranked excerpt" in result.context
    repository.get_by_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_context_for_missing_document_raises(mock_session):
    with pytest.raises(DocumentNotFoundError):
        await _pipeline(_repository(None)).build_context(mock_session, uuid.uuid4())


# ---------------------------------------------------------------------------
# stream_answer
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stream_answer_grounds_llm_in_document(mock_session):
    document = _document()
    llm = FakeLLM(["The total ", "is 1,200 EUR."])
    pipeline = _pipeline(_repository(document), llm=llm)

    stream = await pipeline.stream_answer(mock_session, document.id, "What is the total?")
    fragments = [fragment async for fragment in stream]

    assert "".join(fragments) == "The total is 1,200 EUR."
    context, message, _ = llm.calls[0]
    assert context == DOCUMENT_TEXT
    assert message == "What is the total?"


@pytest.mark.asyncio
async def test_stream_answer_missing_document_fails_before_streaming(mock_session):
    llm = FakeLLM(["never"])
    pipeline = _pipeline(_repository(None), llm=llm)

    with pytest.raises(DocumentNotFoundError):
        await pipeline.stream_answer(mock_session, uuid.uuid4(), "question")

    assert llm.calls == []
