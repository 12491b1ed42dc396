# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""PostgreSQL + pgvector vector index.

ANN search through an HNSW index on cosine distance. Fingerprint filtering is a
post-filter over a widened candidate set:

1. ``SET LOCAL hnsw.ef_search`` to the candidate count
2. Inner query: nearest ``prefilter_limit`` rows by cosine distance
3. Outer query: keep rows whose fingerprint matches or is NULL, then LIMIT

Scores are ``1 - cosine distance`` clamped to [0, 1].
"""

import asyncio
import json
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ..errors import ConfigurationError, UpstreamServiceError
from ..models import CacheEntry, CacheStats, SimilarityResult
from .base import VectorIndex, candidate_window

logger = structlog.get_logger(__name__)

SERVICE_NAME = "pgvector"
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

# pgvector accepts hnsw.ef_search in [1, 1000]; 40 is its default
MIN_EF_SEARCH = 40
MAX_EF_SEARCH = 1000


def _validate_identifier(value: str, what: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ConfigurationError(
            f"Invalid {what}: {value!r}",
            details={what: value, "pattern": _IDENTIFIER.pattern},
        )
    return value


def _vector_literal(embedding: list[float]) -> str:
    return "[" + ",".join(str(float(v)) for v in embedding) + "]"


def _parse_vector(value: Any) -> list[float]:
    """pgvector columns come back as '[1,2,3]' text when cast."""
    if isinstance(value, str):
        return [float(v) for v in json.loads(value)]
    return [float(v) for v in value]


def _parse_metadata(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


class PgVectorIndex(VectorIndex):
    """Vector index stored in a PostgreSQL table with a pgvector column.

    ``collection_name`` is the table, ``embedding_field`` the vector column.
    Both are validated as plain SQL identifiers.
    """

    def __init__(
        self,
        database_url: str | None = None,
        collection_name: str = "semantic_cache",
        embedding_field: str = "embedding",
        dimension: int = 1024,
        ensure_schema: bool = True,
        session_factory: Callable[[], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if database_url is None and session_factory is None:
            raise ConfigurationError("PgVectorIndex needs a database_url or a session_factory")
        if dimension < 1:
            raise ConfigurationError(f"Invalid embedding dimension: {dimension}")

        self._database_url = database_url
        self._table = _validate_identifier(collection_name, "collection_name")
        self._column = _validate_identifier(embedding_field, "embedding_field")
        self._dimension = dimension
        self._ensure_schema = ensure_schema
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._engine: AsyncEngine | None = None
        self._session_factory = session_factory
        self._schema_ready = not ensure_schema
        self._connect_lock = asyncio.Lock()

    @property
    def table(self) -> str:
        return self._table

    async def connect(self) -> None:
        """Create the engine on first use and make sure the table exists.

        Concurrent first calls wait for a single setup; nobody proceeds until
        the schema DDL has committed.
        """
        if self._session_factory is not None and self._schema_ready:
            return

        async with self._connect_lock:
            if self._session_factory is None:
                logger.info("Initializing vector index", table=self._table)
                self._engine = create_async_engine(
                    self._database_url,
                    echo=False,
                    poolclass=NullPool,
                )
                self._session_factory = async_sessionmaker(
                    bind=self._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

            if self._schema_ready:
                return

            try:
                async with self._session_factory() as session:
                    for statement in self._schema_statements():
                        await session.execute(text(statement))
                    await session.commit()
            except SQLAlchemyError as e:
                raise UpstreamServiceError(SERVICE_NAME, f"Schema setup failed: {e}") from e
            self._schema_ready = True
            logger.info("Vector index schema ready", table=self._table)

    def _schema_statements(self) -> list[str]:
        table, column = self._table, self._column
        return [
            "CREATE EXTENSION IF NOT EXISTS vector",
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                query TEXT NOT NULL,
                response TEXT NOT NULL,
                {column} vector({self._dimension}) NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                hit_count INTEGER NOT NULL DEFAULT 0,
                last_accessed_at TIMESTAMPTZ NOT NULL,
                schema_fingerprint VARCHAR(64),
                metadata JSONB
            )
            """,
            f"""
            CREATE INDEX IF NOT EXISTS ix_{table}_{column}_hnsw
            ON {table}
            USING hnsw ({column} vector_cosine_ops)
            """,
            f"CREATE INDEX IF NOT EXISTS ix_{table}_schema_fingerprint ON {table} (schema_fingerprint)",
        ]

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        await self.connect()
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise UpstreamServiceError(SERVICE_NAME, str(e)) from e
            except Exception:
                await session.rollback()
                raise

    async def store(self, entry: CacheEntry) -> str:
        async with self._session() as session:
            result = await session.execute(
                text(f"""
                    INSERT INTO {self._table}
                        (query, response, {self._column}, created_at, hit_count,
                         last_accessed_at, schema_fingerprint, metadata)
                    VALUES
                        (:query, :response, CAST(:embedding AS vector), :created_at, :hit_count,
                         :last_accessed_at, :fingerprint, CAST(:metadata AS jsonb))
                    RETURNING id
                """),
                {
                    "query": entry.query,
                    "response": entry.response,
                    "embedding": _vector_literal(entry.embedding),
                    "created_at": entry.created_at,
                    "hit_count": entry.hit_count,
                    "last_accessed_at": entry.last_accessed_at,
                    "fingerprint": entry.schema_fingerprint,
                    "metadata": json.dumps(entry.metadata) if entry.metadata is not None else None,
                },
            )
            entry_id = str(result.scalar_one())

        logger.debug("index_store", table=self._table, entry_id=entry_id)
        return entry_id

    async def search_similar(
        self,
        embedding: list[float],
        limit: int = 5,
        fingerprint: str | None = None,
    ) -> list[SimilarityResult]:
        num_candidates, prefilter_limit = candidate_window(limit, fingerprint is not None)
        ef_search = max(MIN_EF_SEARCH, min(MAX_EF_SEARCH, num_candidates))

        fingerprint_filter = ""
        params: dict[str, Any] = {
            "embedding": _vector_literal(embedding),
            "prefilter_limit": prefilter_limit,
            "limit": limit,
        }
        if fingerprint is not None:
            fingerprint_filter = "WHERE schema_fingerprint = :fingerprint OR schema_fingerprint IS NULL"
            params["fingerprint"] = fingerprint

        async with self._session() as session:
            # SET does not take bind parameters; ef_search is a bounded int
            await session.execute(text(f"SET LOCAL hnsw.ef_search = {int(ef_search)}"))
            result = await session.execute(
                text(f"""
                    WITH candidates AS (
                        SELECT id, query, response,
                               CAST({self._column} AS text) AS embedding_text,
                               created_at, hit_count, last_accessed_at,
                               schema_fingerprint, metadata,
                               {self._column} <=> CAST(:embedding AS vector) AS distance
                        FROM {self._table}
                        ORDER BY distance
                        LIMIT :prefilter_limit
                    )
                    SELECT *, GREATEST(0, LEAST(1, 1 - distance)) AS score
                    FROM candidates
                    {fingerprint_filter}
                    ORDER BY distance
                    LIMIT :limit
                """),
                params,
            )
            rows = result.fetchall()

        return [
            SimilarityResult(
                entry=CacheEntry(
                    id=str(row.id),
                    query=row.query,
                    response=row.response,
                    embedding=_parse_vector(row.embedding_text),
                    created_at=row.created_at,
                    hit_count=row.hit_count,
                    last_accessed_at=row.last_accessed_at,
                    schema_fingerprint=row.schema_fingerprint,
                    metadata=_parse_metadata(row.metadata),
                ),
                score=float(row.score),
            )
            for row in rows
        ]

    async def record_hit(self, entry_id: str) -> None:
        # Ids are BIGSERIAL; anything else cannot name a row
        if not entry_id.isdigit():
            return

        async with self._session() as session:
            await session.execute(
                text(f"""
                    UPDATE {self._table}
                    SET hit_count = hit_count + 1,
                        last_accessed_at = :now
                    WHERE id = CAST(:entry_id AS BIGINT)
                """),
                {"entry_id": entry_id, "now": self._clock()},
            )

    async def get_stats(self) -> CacheStats:
        async with self._session() as session:
            result = await session.execute(
                text(f"""
                    SELECT COUNT(*) AS total_entries,
                           COALESCE(SUM(hit_count), 0) AS total_hits,
                           MIN(created_at) AS oldest_entry,
                           MAX(created_at) AS newest_entry,
                           pg_total_relation_size(CAST(:table AS regclass)) AS size_bytes
                    FROM {self._table}
                """),
                {"table": self._table},
            )
            row = result.fetchone()

        if row is None:
            return CacheStats()
        if not row.total_entries:
            return CacheStats(approx_size_bytes=int(row.size_bytes or 0))

        return CacheStats(
            total_entries=int(row.total_entries),
            total_hits=int(row.total_hits),
            oldest_entry=row.oldest_entry,
            newest_entry=row.newest_entry,
            approx_size_bytes=int(row.size_bytes or 0),
        )

    async def clear(self) -> int:
        async with self._session() as session:
            result = await session.execute(text(f"DELETE FROM {self._table}"))
            count = result.rowcount

        logger.info("index_clear", table=self._table, deleted=count)
        return count

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Vector index connection closed", table=self._table)
