"""
Pytest Configuration and Fixtures

Shared fixtures for the offline unit tests. Integration tests under
``tests/integration`` need a live PostgreSQL with pgvector and are
skipped unless DOCVAULT_INTEGRATION=1.
"""

import os

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Test environment defaults: MUST be set before any docvault imports.
#
# 1. Load .env first so that local credentials are available.
# 2. setdefault fills in anything still missing (CI runners, fresh clones
#    without a .env file) so that pydantic Settings validation doesn't crash.
# ---------------------------------------------------------------------------
load_dotenv()  # .env → os.environ (no-op if file is missing)

_test_env = {
    "POSTGRES_USER": "docvault",
    "POSTGRES_PASSWORD": "docvault_password",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "docvault_test",
    "OPENAI_API_KEY": "mock",
}
for _key, _value in _test_env.items():
    os.environ.setdefault(_key, _value)

# ---------------------------------------------------------------------------
# Imports (safe now that env vars are set)
# ---------------------------------------------------------------------------
from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from tests.helpers import FakeEmbeddingsAPI  # noqa: E402


@pytest.fixture
def fake_embeddings_api() -> FakeEmbeddingsAPI:
    return FakeEmbeddingsAPI()


@pytest.fixture
def fake_openai_client(fake_embeddings_api: FakeEmbeddingsAPI) -> SimpleNamespace:
    """Minimal AsyncOpenAI look-alike exposing ``embeddings.create``."""
    return SimpleNamespace(embeddings=fake_embeddings_api)


@pytest.fixture
def mock_session() -> MagicMock:
    """AsyncSession mock for code that only passes the session through."""
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    return session
