"""
API Unit Tests

Tests for the HTTP surface with mocked infrastructure: the database
check is patched out of the lifespan and the session, repository,
pipeline and parse queue are replaced through dependency overrides.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from docvault.api.v1.dependencies import get_parse_queue, get_pipeline, get_repository
from docvault.core.database import get_db
from docvault.core.exceptions import (
    DocumentNotFoundError,
    EmbeddingError,
    EmptyContentError,
)
from docvault.main import app
from docvault.services.context_config import GPT4O_MINI_CONFIG
from docvault.services.parsing import ParseJob
from docvault.services.pipeline import ContextResult, ContextSource, ProcessResult
from tests.helpers import make_result


@pytest.fixture
def repo() -> MagicMock:
    repo = MagicMock()
    repo.get_by_hash = AsyncMock(return_value=None)
    repo.get_by_id = AsyncMock(return_value=None)
    repo.create = AsyncMock(return_value=SimpleNamespace(id=uuid.uuid4()))
    repo.delete = AsyncMock()
    return repo


@pytest.fixture
def pipeline() -> MagicMock:
    return MagicMock()


@pytest.fixture
def queue() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(mock_session, repo, pipeline, queue):
    """TestClient with the database and services replaced by mocks."""

    async def _db():
        yield mock_session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_parse_queue] = lambda: queue

    with (
        patch("docvault.main.verify_connection", new_callable=AsyncMock),
        patch("docvault.main.dispose_engine", new_callable=AsyncMock),
        TestClient(app) as test_client,
    ):
        yield test_client

    app.dependency_overrides.clear()


def _document_row(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid.uuid4(),
        "name": "report.pdf",
        "size": 1024,
        "mime_type": "application/pdf",
        "content_hash": "a" * 64,
        "parse_status": "completed",
        "parse_error": None,
        "preview_text": "Quarterly report",
        "processed_for_embedding": True,
        "chunk_count": 3,
        "chunk_version": 1,
        "parsed_at": datetime.now(timezone.utc),
        "embedding_updated_at": None,
        "created_at": datetime.now(timezone.utc),
        "updated_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


async def _fragments(*parts: str):
    for part in parts:
        yield part


async def _failing_fragments():
    yield "partial"
    raise RuntimeError("provider dropped the connection")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "docvault"
    assert "llm_provider" in data


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestUpload:
    def test_new_file_is_accepted(self, client, repo, queue):
        response = client.post(
            "/api/v1/documents",
            files={"file": ("notes.md", b"# Notes\n\nSome content.", "text/markdown")},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "processing"
        assert body["filename"] == "notes.md"

        created = repo.create.await_args.args[1]
        assert created["mime_type"] == "text/markdown"
        assert created["parse_status"] == "pending"
        assert len(created["content_hash"]) == 64

        job = queue.enqueue.call_args.args[0]
        assert isinstance(job, ParseJob)
        assert job.raw == b"# Notes\n\nSome content."
        assert str(job.document_id) == body["document_id"]

    def test_duplicate_returns_existing(self, client, repo, queue):
        existing = SimpleNamespace(id=uuid.uuid4(), name="original.md")
        repo.get_by_hash.return_value = existing

        response = client.post(
            "/api/v1/documents",
            files={"file": ("copy.md", b"same bytes", "text/markdown")},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert response.json()["document_id"] == str(existing.id)
        repo.create.assert_not_awaited()
        queue.enqueue.assert_not_called()

    def test_concurrent_duplicate_resolved_after_integrity_error(
        self, client, repo, queue, mock_session
    ):
        existing = SimpleNamespace(id=uuid.uuid4(), name="notes.md")
        repo.get_by_hash.side_effect = [None, existing]
        repo.create.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        response = client.post(
            "/api/v1/documents",
            files={"file": ("notes.md", b"racing bytes", "text/markdown")},
        )

        assert response.status_code == 200
        assert response.json()["document_id"] == str(existing.id)
        mock_session.rollback.assert_awaited_once()
        queue.enqueue.assert_not_called()

    def test_unsupported_type_rejected(self, client, repo):
        response = client.post(
            "/api/v1/documents",
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
        )

        assert response.status_code == 422
        assert "Unsupported file type" in response.json()["detail"]
        repo.create.assert_not_awaited()


def test_get_document(client, repo):
    row = _document_row()
    repo.get_by_id.return_value = row

    response = client.get(f"/api/v1/documents/{row.id}")

    assert response.status_code == 200
    assert response.json()["name"] == "report.pdf"
    assert response.json()["chunk_count"] == 3


def test_get_missing_document_returns_404(client):
    response = client.get(f"/api/v1/documents/{uuid.uuid4()}")

    assert response.status_code == 404


def test_delete_document(client, repo):
    row = _document_row()
    repo.get_by_id.return_value = row

    response = client.delete(f"/api/v1/documents/{row.id}")

    assert response.status_code == 204
    repo.delete.assert_awaited_once()


def test_process_document(client, pipeline):
    document_id = uuid.uuid4()
    pipeline.process_document = AsyncMock(
        return_value=ProcessResult(
            chunks_created=4,
            chunks_deleted=2,
            embeddings_processed=4,
            tokens_used=512,
            is_preview_content=False,
        )
    )

    response = client.post(
        f"/api/v1/documents/{document_id}/process",
        json={"skip_chunking": False, "model_name": "gpt-4"},
    )

    assert response.status_code == 200
    assert response.json()["chunks_created"] == 4
    assert response.json()["document_id"] == str(document_id)
    assert pipeline.process_document.await_args.kwargs["model_name"] == "gpt-4"


def test_process_without_content_returns_400(client, pipeline):
    pipeline.process_document = AsyncMock(side_effect=EmptyContentError("no content"))

    response = client.post(f"/api/v1/documents/{uuid.uuid4()}/process")

    assert response.status_code == 400
    assert response.json()["detail"] == "no content"


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def test_search_post(client, pipeline):
    document_id = uuid.uuid4()
    pipeline.search = AsyncMock(return_value=[make_result("invoice total", 0.8)])

    response = client.post(
        "/api/v1/search",
        json={"query": "invoice total", "limit": 5, "document_ids": [str(document_id)]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["results"][0]["content"] == "invoice total"
    options = pipeline.search.await_args.args[1]
    assert options.limit == 5
    assert options.document_ids == (document_id,)


def test_search_rejects_empty_query(client, pipeline):
    pipeline.search = AsyncMock()

    response = client.post("/api/v1/search", json={"query": ""})

    assert response.status_code == 422
    pipeline.search.assert_not_awaited()


def test_search_provider_failure_returns_502(client, pipeline):
    pipeline.search = AsyncMock(side_effect=EmbeddingError("bad response"))

    response = client.post("/api/v1/search", json={"query": "invoice"})

    assert response.status_code == 502
    assert "EmbeddingError" in response.json()["detail"]


def test_search_get_grouped(client, pipeline):
    document_id = uuid.uuid4()
    pipeline.search = AsyncMock(
        return_value=[
            make_result("one", 0.9, document_id=document_id),
            make_result("two", 0.7, document_id=document_id),
        ]
    )

    response = client.get("/api/v1/search", params={"q": "invoice", "group_by": "document"})

    assert response.status_code == 200
    groups = response.json()["groups"]
    assert len(groups) == 1
    assert groups[0]["chunk_count"] == 2


# ---------------------------------------------------------------------------
# Context and chat
# ---------------------------------------------------------------------------


def test_build_context(client, pipeline):
    document_id = uuid.uuid4()
    pipeline.build_context = AsyncMock(
        return_value=ContextResult(
            context="Full document text",
            source=ContextSource.FULL_TEXT,
            estimated_tokens=5,
            config=GPT4O_MINI_CONFIG,
        )
    )

    response = client.post("/api/v1/context", json={"document_id": str(document_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "full_text"
    assert body["max_tokens"] == GPT4O_MINI_CONFIG.max_tokens
    assert body["max_relevant_chunks"] == 12


def test_chat_streams_sse_frames(client, pipeline):
    pipeline.stream_answer = AsyncMock(return_value=_fragments("The total ", "is 1,200 EUR."))

    response = client.post(
        "/api/v1/chat",
        json={"document_id": str(uuid.uuid4()), "message": "What is the total?"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text == (
        'data: {"chunk": "The total "}\n\n'
        'data: {"chunk": "is 1,200 EUR."}\n\n'
        "data: [DONE]\n\n"
    )


def test_chat_mid_stream_failure_sends_error_frame(client, pipeline):
    pipeline.stream_answer = AsyncMock(return_value=_failing_fragments())

    response = client.post(
        "/api/v1/chat",
        json={"document_id": str(uuid.uuid4()), "message": "Summarize"},
    )

    assert response.status_code == 200
    assert 'data: {"chunk": "partial"}' in response.text
    assert 'data: {"error": "RuntimeError"}' in response.text
    assert "[DONE]" not in response.text


def test_chat_missing_document_returns_404(client, pipeline):
    pipeline.stream_answer = AsyncMock(side_effect=DocumentNotFoundError("Document not found"))

    response = client.post(
        "/api/v1/chat",
        json={"document_id": str(uuid.uuid4()), "message": "Summarize"},
    )

    assert response.status_code == 404
