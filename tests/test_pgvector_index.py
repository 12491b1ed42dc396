# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for the pgvector index (mocked sessions)."""

import asyncio
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from semcache.errors import ConfigurationError, UpstreamServiceError
from semcache.index.pgvector import PgVectorIndex
from semcache.models import CacheEntry

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


class SessionContext:
    """Stands in for ``async_sessionmaker()``: ``async with factory() as session``."""

    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, *exc_info):
        return False


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def pg_index(mock_session) -> PgVectorIndex:
    return PgVectorIndex(
        collection_name="semantic_cache",
        embedding_field="embedding",
        dimension=3,
        ensure_schema=False,
        session_factory=lambda: SessionContext(mock_session),
        clock=lambda: NOW,
    )


def executed_sql(session, call_index: int) -> str:
    return str(session.execute.call_args_list[call_index].args[0])


def row(**overrides):
    values = {
        "id": 7,
        "query": "What is the capital of France?",
        "response": "Paris.",
        "embedding_text": "[1,0,0]",
        "created_at": NOW,
        "hit_count": 2,
        "last_accessed_at": NOW,
        "schema_fingerprint": None,
        "metadata": {"completion_ms": 812.5},
        "distance": 0.0,
        "score": 1.0,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:

    def test_requires_url_or_factory(self):
        with pytest.raises(ConfigurationError):
            PgVectorIndex()

    @pytest.mark.parametrize("name", ["semantic-cache", "1cache", "cache; DROP TABLE x", ""])
    def test_rejects_unsafe_collection_name(self, name):
        with pytest.raises(ConfigurationError):
            PgVectorIndex(database_url="postgresql+asyncpg://localhost/db", collection_name=name)

    def test_rejects_unsafe_embedding_field(self):
        with pytest.raises(ConfigurationError):
            PgVectorIndex(database_url="postgresql+asyncpg://localhost/db", embedding_field="vec tor")

    def test_rejects_invalid_dimension(self):
        with pytest.raises(ConfigurationError):
            PgVectorIndex(database_url="postgresql+asyncpg://localhost/db", dimension=0)

    def test_custom_identifiers(self):
        index = PgVectorIndex(
            database_url="postgresql+asyncpg://localhost/db",
            collection_name="answers",
            embedding_field="query_vector",
        )
        assert index.table == "answers"


# =============================================================================
# Schema setup
# =============================================================================


class TestSchemaSetup:

    @pytest.mark.asyncio
    async def test_creates_extension_table_and_indexes_once(self, mock_session):
        index = PgVectorIndex(
            collection_name="answers",
            embedding_field="query_vector",
            dimension=384,
            session_factory=lambda: SessionContext(mock_session),
        )

        await index.connect()
        await index.connect()

        statements = [str(c.args[0]) for c in mock_session.execute.call_args_list]
        assert len(statements) == 4
        assert "CREATE EXTENSION IF NOT EXISTS vector" in statements[0]
        assert "CREATE TABLE IF NOT EXISTS answers" in statements[1]
        assert "query_vector vector(384)" in statements[1]
        assert "USING hnsw (query_vector vector_cosine_ops)" in statements[2]
        assert "ix_answers_schema_fingerprint" in statements[3]
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_schema_failure_is_upstream_error(self, mock_session):
        mock_session.execute.side_effect = OperationalError("CREATE", {}, Exception("no pgvector"))
        index = PgVectorIndex(session_factory=lambda: SessionContext(mock_session))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await index.connect()

        assert exc_info.value.service == "pgvector"


# =============================================================================
# Store
# =============================================================================


class TestStore:

    @pytest.mark.asyncio
    async def test_insert_returns_id(self, pg_index, mock_session):
        result = MagicMock()
        result.scalar_one.return_value = 42
        mock_session.execute.return_value = result

        entry_id = await pg_index.store(
            CacheEntry(
                query="q",
                response="r",
                embedding=[0.1, 0.2, 0.3],
                created_at=NOW,
                last_accessed_at=NOW,
                schema_fingerprint="schema_0123456789abcdef",
                metadata={"model": "gpt-5-mini"},
            )
        )

        assert entry_id == "42"
        sql = executed_sql(mock_session, 0)
        assert "INSERT INTO semantic_cache" in sql
        assert "RETURNING id" in sql
        params = mock_session.execute.call_args.args[1]
        assert params["embedding"] == "[0.1,0.2,0.3]"
        assert params["fingerprint"] == "schema_0123456789abcdef"
        assert params["hit_count"] == 0
        assert json.loads(params["metadata"]) == {"model": "gpt-5-mini"}
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_error_rolls_back(self, pg_index, mock_session):
        mock_session.execute.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))

        with pytest.raises(UpstreamServiceError):
            await pg_index.store(
                CacheEntry(query="q", response="r", embedding=[1.0, 0.0, 0.0], created_at=NOW, last_accessed_at=NOW)
            )

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()


# =============================================================================
# Search
# =============================================================================


class TestSearch:

    @pytest.fixture
    def search_result(self, mock_session):
        result = MagicMock()
        result.fetchall.return_value = [row()]
        mock_session.execute.side_effect = [MagicMock(), result]
        return result

    @pytest.mark.asyncio
    async def test_unfiltered_query_shape(self, pg_index, mock_session, search_result):
        results = await pg_index.search_similar([1.0, 0.0, 0.0], 1)

        assert "SET LOCAL hnsw.ef_search = 40" in executed_sql(mock_session, 0)
        sql = executed_sql(mock_session, 1)
        assert "embedding <=> CAST(:embedding AS vector)" in sql
        assert "GREATEST(0, LEAST(1, 1 - distance))" in sql
        assert "schema_fingerprint = :fingerprint" not in sql
        params = mock_session.execute.call_args_list[1].args[1]
        assert params["prefilter_limit"] == 1
        assert params["limit"] == 1

        assert len(results) == 1
        entry = results[0].entry
        assert entry.id == "7"
        assert entry.embedding == [1.0, 0.0, 0.0]
        assert entry.hit_count == 2
        assert entry.metadata == {"completion_ms": 812.5}
        assert results[0].score == 1.0

    @pytest.mark.asyncio
    async def test_filtered_query_widens_prefilter(self, pg_index, mock_session, search_result):
        await pg_index.search_similar([1.0, 0.0, 0.0], 1, "schema_0123456789abcdef")

        sql = executed_sql(mock_session, 1)
        assert "WHERE schema_fingerprint = :fingerprint OR schema_fingerprint IS NULL" in sql
        params = mock_session.execute.call_args_list[1].args[1]
        assert params["prefilter_limit"] == 5
        assert params["limit"] == 1
        assert params["fingerprint"] == "schema_0123456789abcdef"

    @pytest.mark.asyncio
    async def test_ef_search_tracks_candidates(self, pg_index, mock_session, search_result):
        await pg_index.search_similar([1.0, 0.0, 0.0], 10)
        assert "SET LOCAL hnsw.ef_search = 200" in executed_sql(mock_session, 0)

    @pytest.mark.asyncio
    async def test_ef_search_capped(self, pg_index, mock_session, search_result):
        await pg_index.search_similar([1.0, 0.0, 0.0], 100)
        assert "SET LOCAL hnsw.ef_search = 1000" in executed_sql(mock_session, 0)

    @pytest.mark.asyncio
    async def test_metadata_as_text(self, pg_index, mock_session, search_result):
        search_result.fetchall.return_value = [row(metadata='{"model": "m"}', embedding_text="[0.5,0.5,0]")]

        results = await pg_index.search_similar([1.0, 0.0, 0.0], 1)

        assert results[0].entry.metadata == {"model": "m"}
        assert results[0].entry.embedding == [0.5, 0.5, 0.0]

    @pytest.mark.asyncio
    async def test_no_rows(self, pg_index, mock_session, search_result):
        search_result.fetchall.return_value = []
        assert await pg_index.search_similar([1.0, 0.0, 0.0], 1) == []

    @pytest.mark.asyncio
    async def test_invalid_limit(self, pg_index):
        with pytest.raises(ValueError):
            await pg_index.search_similar([1.0, 0.0, 0.0], 0)


# =============================================================================
# Hits, stats, clear
# =============================================================================


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_record_hit(self, pg_index, mock_session):
        await pg_index.record_hit("7")

        sql = executed_sql(mock_session, 0)
        assert "hit_count = hit_count + 1" in sql
        params = mock_session.execute.call_args.args[1]
        assert params == {"entry_id": "7", "now": NOW}

    @pytest.mark.asyncio
    async def test_stats(self, pg_index, mock_session):
        result = MagicMock()
        result.fetchone.return_value = SimpleNamespace(
            total_entries=3,
            total_hits=5,
            oldest_entry=NOW,
            newest_entry=NOW,
            size_bytes=65536,
        )
        mock_session.execute.return_value = result

        stats = await pg_index.get_stats()

        assert stats.total_entries == 3
        assert stats.total_hits == 5
        assert stats.oldest_entry == NOW
        assert stats.approx_size_bytes == 65536

    @pytest.mark.asyncio
    async def test_stats_empty_table(self, pg_index, mock_session):
        result = MagicMock()
        result.fetchone.return_value = SimpleNamespace(
            total_entries=0,
            total_hits=0,
            oldest_entry=None,
            newest_entry=None,
            size_bytes=16384,
        )
        mock_session.execute.return_value = result

        stats = await pg_index.get_stats()

        assert stats.total_entries == 0
        assert stats.oldest_entry is None
        assert stats.approx_size_bytes == 16384

    @pytest.mark.asyncio
    async def test_clear(self, pg_index, mock_session):
        result = MagicMock()
        result.rowcount = 4
        mock_session.execute.return_value = result

        assert await pg_index.clear() == 4
        assert "DELETE FROM semantic_cache" in executed_sql(mock_session, 0)

    @pytest.mark.asyncio
    async def test_close_without_engine_is_safe(self, pg_index):
        await pg_index.close()
        await pg_index.close()


# =============================================================================
# Concurrent first use
# =============================================================================


class RecordingSession:
    """Session that yields on every call so concurrent callers interleave."""

    def __init__(self, log: list[str], fail_ddl: bool = False):
        self.log = log
        self.fail_ddl = fail_ddl

    async def execute(self, statement, params=None):
        await asyncio.sleep(0)
        sql = " ".join(str(statement).split())
        if self.fail_ddl and sql.startswith("CREATE TABLE"):
            raise OperationalError("CREATE", {}, Exception("permission denied"))
        self.log.append(sql)
        result = MagicMock()
        result.scalar_one.return_value = len(self.log)
        return result

    async def commit(self):
        await asyncio.sleep(0)
        self.log.append("COMMIT")

    async def rollback(self):
        self.log.append("ROLLBACK")


class TestConcurrentFirstUse:

    @staticmethod
    def entry() -> CacheEntry:
        return CacheEntry(query="q", response="r", embedding=[1.0, 0.0, 0.0], created_at=NOW, last_accessed_at=NOW)

    @pytest.mark.asyncio
    async def test_schema_committed_before_any_insert(self):
        log: list[str] = []
        index = PgVectorIndex(dimension=3, session_factory=lambda: SessionContext(RecordingSession(log)))

        await asyncio.gather(index.store(self.entry()), index.store(self.entry()))

        first_insert = next(i for i, sql in enumerate(log) if sql.startswith("INSERT"))
        schema_commit = log.index("COMMIT")
        assert sum(sql.startswith("CREATE TABLE") for sql in log) == 1
        assert schema_commit < first_insert
        assert sum(sql.startswith("INSERT") for sql in log) == 2

    @pytest.mark.asyncio
    async def test_failed_setup_blocks_every_caller_and_retries(self):
        log: list[str] = []
        sessions = {"fail_ddl": True}
        index = PgVectorIndex(
            dimension=3,
            session_factory=lambda: SessionContext(RecordingSession(log, **sessions)),
        )

        results = await asyncio.gather(
            index.store(self.entry()), index.store(self.entry()), return_exceptions=True
        )

        assert all(isinstance(r, UpstreamServiceError) for r in results)
        assert not any(sql.startswith("INSERT") for sql in log)

        sessions["fail_ddl"] = False
        assert await index.store(self.entry())
        assert any(sql.startswith("CREATE TABLE") for sql in log)

    @pytest.mark.asyncio
    async def test_single_engine_for_concurrent_callers(self, monkeypatch):
        created = []
        log: list[str] = []

        def fake_engine(url, **kwargs):
            created.append(url)
            return MagicMock()

        monkeypatch.setattr("semcache.index.pgvector.create_async_engine", fake_engine)
        monkeypatch.setattr(
            "semcache.index.pgvector.async_sessionmaker",
            lambda **kwargs: (lambda: SessionContext(RecordingSession(log))),
        )
        index = PgVectorIndex(database_url="postgresql+asyncpg://localhost/db", dimension=3)

        await asyncio.gather(index.connect(), index.connect(), index.connect())

        assert created == ["postgresql+asyncpg://localhost/db"]
        assert sum(sql.startswith("CREATE TABLE") for sql in log) == 1


class TestRecordHitIds:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entry_id", ["mem_1", "", "12a", "-3"])
    async def test_non_numeric_id_is_noop(self, pg_index, mock_session, entry_id):
        await pg_index.record_hit(entry_id)
        mock_session.execute.assert_not_called()
