"""
Keyword Search Unit Tests

Tests for keyword extraction, presence scoring and the keyword half of
the chunk index (with a mocked session factory).
"""

from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from docvault.core.exceptions import DimensionMismatchError
from docvault.models.schemas import RelevanceType
from docvault.repositories.index import ChunkIndex
from docvault.services.keywords import extract_keywords, keyword_score

# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractKeywords:
    def test_punctuation_becomes_separator(self):
        assert extract_keywords("invoice-total, 2024!") == ["invoice", "total", "2024"]

    def test_single_characters_dropped(self):
        assert extract_keywords("a b invoice c") == ["invoice"]

    def test_stopwords_dropped(self):
        assert extract_keywords("what is the invoice total") == ["invoice", "total"]

    def test_chinese_particles_dropped(self):
        assert extract_keywords("发票 的 金额") == ["发票", "金额"]

    def test_duplicates_removed_in_order(self):
        assert extract_keywords("total invoice total") == ["total", "invoice"]

    def test_no_keywords(self):
        assert extract_keywords("!!! ? a") == []


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class TestKeywordScore:
    def test_all_keywords_present(self):
        assert keyword_score("The Invoice TOTAL is due", ["invoice", "total"]) == 1.0

    def test_half_keywords_present(self):
        assert keyword_score("invoice attached", ["invoice", "total"]) == 0.5

    def test_repeats_do_not_add_weight(self):
        assert keyword_score("invoice invoice invoice", ["invoice", "total"]) == 0.5

    def test_empty_keywords(self):
        assert keyword_score("anything", []) == 0.0


# ---------------------------------------------------------------------------
# ChunkIndex with a mocked session
# ---------------------------------------------------------------------------


def _chunk(content: str, index: int, document_id: uuid.UUID) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        document_id=document_id,
        chunk_index=index,
        content=content,
        chunk_metadata={},
    )


def _index_returning(rows: list[tuple]) -> tuple[ChunkIndex, MagicMock]:
    session = MagicMock()
    result = MagicMock()
    result.all.return_value = rows
    session.execute = AsyncMock(return_value=result)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    factory = MagicMock(return_value=context)
    return ChunkIndex(factory), session


@pytest.mark.asyncio
async def test_invoice_total_scenario():
    """Chunk 3 holds both keywords (1.0); a chunk with only 'invoice' scores 0.5."""
    document_id = uuid.uuid4()
    only_invoice = _chunk("Invoice attached for March.", 1, document_id)
    both = _chunk("The invoice total is 1,200 EUR.", 3, document_id)
    index, _ = _index_returning([(only_invoice, "D.pdf"), (both, "D.pdf")])

    results = await index.keyword_search("invoice total", limit=20)

    assert [r.chunk_index for r in results] == [3, 1]
    assert results[0].score == 1.0
    assert results[1].score == 0.5
    assert all(r.relevance_type is RelevanceType.KEYWORD for r in results)
    assert results[0].document_name == "D.pdf"


@pytest.mark.asyncio
async def test_keyword_search_without_keywords_skips_query():
    index, session = _index_returning([])

    assert await index.keyword_search("a ? !", limit=10) == []
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_semantic_search_scores_are_clamped():
    document_id = uuid.uuid4()
    rows = [
        (_chunk("close", 0, document_id), "D.pdf", 0.1),
        (_chunk("exact", 1, document_id), "D.pdf", -0.0000001),
    ]
    index, _ = _index_returning(rows)

    results = await index.semantic_search([0.1] * 1536, limit=5, similarity_threshold=0.7)

    assert results[0].score == pytest.approx(0.9)
    assert results[1].score == 1.0
    assert all(r.relevance_type is RelevanceType.SEMANTIC for r in results)


@pytest.mark.asyncio
async def test_semantic_search_rejects_wrong_dimension():
    index, session = _index_returning([])

    with pytest.raises(DimensionMismatchError):
        await index.semantic_search([0.1] * 384, limit=5, similarity_threshold=0.7)
    session.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# Generated SQL
# ---------------------------------------------------------------------------


def _compiled(session: MagicMock) -> tuple[str, dict]:
    stmt = session.execute.await_args.args[0]
    compiled = stmt.compile(dialect=postgresql.dialect())
    return str(compiled), compiled.params


class TestSemanticSql:
    @pytest.mark.asyncio
    async def test_threshold_order_and_limit(self):
        index, session = _index_returning([])

        await index.semantic_search([0.1] * 1536, limit=20, similarity_threshold=0.7)

        sql, params = _compiled(session)
        assert "chunks.embedding <=>" in sql
        assert "chunks.embedding IS NOT NULL" in sql
        assert "<= %(" in sql
        assert "ORDER BY distance" in sql
        assert "DESC" not in sql
        assert "LIMIT" in sql
        floats = [v for v in params.values() if isinstance(v, float)]
        assert floats == [pytest.approx(0.3)]
        assert 20 in [v for v in params.values() if isinstance(v, int)]

    @pytest.mark.asyncio
    async def test_document_filter(self):
        index, session = _index_returning([])

        await index.semantic_search(
            [0.1] * 1536,
            limit=5,
            similarity_threshold=0.5,
            document_ids=[uuid.uuid4()],
        )

        sql, _ = _compiled(session)
        assert "chunks.document_id IN" in sql

    @pytest.mark.asyncio
    async def test_empty_document_ids_means_no_filter(self):
        index, session = _index_returning([])

        await index.semantic_search(
            [0.1] * 1536, limit=5, similarity_threshold=0.5, document_ids=[]
        )

        sql, _ = _compiled(session)
        assert "document_id IN" not in sql


class TestKeywordSql:
    @pytest.mark.asyncio
    async def test_ilike_predicates_are_or_ed(self):
        index, session = _index_returning([])

        await index.keyword_search("invoice total", limit=20)

        sql, params = _compiled(session)
        assert sql.count("chunks.content ILIKE") == 2
        assert " OR " in sql
        assert "document_id IN" not in sql
        assert "LIMIT" in sql
        values = list(params.values())
        assert "%invoice%" in values
        assert "%total%" in values
        assert 20 in values

    @pytest.mark.asyncio
    async def test_document_filter(self):
        index, session = _index_returning([])

        await index.keyword_search("invoice", limit=5, document_ids=[uuid.uuid4()])

        sql, _ = _compiled(session)
        assert "chunks.content ILIKE" in sql
        assert "chunks.document_id IN" in sql

    @pytest.mark.asyncio
    async def test_empty_document_ids_means_no_filter(self):
        index, session = _index_returning([])

        await index.keyword_search("invoice", limit=5, document_ids=[])

        sql, _ = _compiled(session)
        assert "document_id IN" not in sql
