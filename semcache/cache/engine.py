# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Similarity cache engine.

Answers a query from the cache when a semantically similar query was already
answered, otherwise asks the completion service and stores the answer:

1. Fingerprint the response schema (if any)
2. Embed the query
3. Fetch the single best match from the vector index, filtered by fingerprint
4. Hit if ``score >= threshold``; otherwise complete, store, return

Embedding, index and completion failures propagate unchanged. Concurrent
identical queries are not coalesced: both miss, both complete, both store.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any

import structlog

from ..completion.base import CompletionService
from ..config import DEFAULT_SIMILARITY_THRESHOLD, Settings, get_settings
from ..embeddings.base import EmbeddingService
from ..errors import ConfigurationError
from ..index.base import VectorIndex
from ..models import CacheEntry, CacheStats, LookupResult, QueryResult, SimilarityResult
from .fingerprint import schema_fingerprint
from .metrics import CACHE_HITS, CACHE_MISSES, COMPLETION_LATENCY, LOOKUP_LATENCY
from .schema import SchemaDescriptor, deserialize_response, serialize_response

logger = structlog.get_logger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def _validate_threshold(threshold: Any) -> float:
    if (
        isinstance(threshold, bool)
        or not isinstance(threshold, (int, float))
        or math.isnan(threshold)
        or threshold < 0
        or threshold > 1
    ):
        raise ConfigurationError(
            "Threshold must be between 0 and 1",
            details={"threshold": threshold},
        )
    return float(threshold)


class SimilarityCacheEngine:
    """Semantic cache in front of a completion service.

    Collaborators are injected; ``from_settings`` wires the production ones.
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        index: VectorIndex,
        completion: CompletionService,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self._embeddings = embeddings
        self._index = index
        self._completion = completion
        self._threshold = _validate_threshold(similarity_threshold)
        # Advisory only: used to estimate time saved on later hits
        self._last_completion_ms: float | None = None
        self._owned: list[Any] = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SimilarityCacheEngine":
        """Build an engine and its collaborators from configuration."""
        from ..completion.openai import OpenAICompletion
        from ..embeddings.local import LocalEmbeddings
        from ..embeddings.voyage import VoyageEmbeddings
        from ..index.memory import InMemoryVectorIndex
        from ..index.pgvector import PgVectorIndex

        settings = settings or get_settings()
        settings.require_credentials()

        embeddings: EmbeddingService
        if settings.embedding_provider == "local":
            embeddings = LocalEmbeddings(settings.local_embedding_model)
        else:
            embeddings = VoyageEmbeddings(
                api_key=settings.voyage_api_key,
                model=settings.voyage_model,
                base_url=settings.voyage_base_url,
                timeout=settings.request_timeout_seconds,
            )

        index: VectorIndex
        if settings.index_backend == "memory":
            index = InMemoryVectorIndex()
        else:
            index = PgVectorIndex(
                database_url=settings.database_url,
                collection_name=settings.collection_name,
                embedding_field=settings.embedding_field_name,
                dimension=embeddings.dimension,
                ensure_schema=settings.ensure_schema,
            )

        completion = OpenAICompletion(
            api_key=settings.openai_api_key,
            model=settings.llm_model,
            base_url=settings.openai_base_url,
            timeout=settings.request_timeout_seconds,
        )

        log_fields: dict[str, Any] = {
            "index": settings.index_backend,
            "embeddings": settings.embedding_provider,
            "model": settings.llm_model,
            "threshold": settings.similarity_threshold,
        }
        if settings.index_backend == "pgvector":
            log_fields["database"] = settings.safe_database_url
        logger.info("Semantic cache configured", **log_fields)
        engine = cls(embeddings, index, completion, settings.similarity_threshold)
        engine._owned = [embeddings, completion]
        return engine

    # =========================================================================
    # Threshold
    # =========================================================================

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        self._threshold = _validate_threshold(value)

    def get_threshold(self) -> float:
        return self._threshold

    def set_threshold(self, value: float) -> None:
        """Set the similarity threshold; bounds are inclusive."""
        self.threshold = value

    @property
    def last_completion_ms(self) -> float | None:
        return self._last_completion_ms

    # =========================================================================
    # Query / lookup
    # =========================================================================

    def _best_hit(self, results: list[SimilarityResult]) -> SimilarityResult | None:
        if not results:
            return None
        top = results[0]
        if top.score >= self._threshold:
            return top
        return None

    def _time_saved(self, entry: CacheEntry, total_ms: float) -> float | None:
        """Estimate time saved against the completion that produced ``entry``.

        Falls back to the last completion seen by this engine for entries that
        did not record their own completion time.
        """
        completion_ms = None
        recorded = (entry.metadata or {}).get("completion_ms")
        if isinstance(recorded, (int, float)) and not isinstance(recorded, bool):
            completion_ms = float(recorded)
        if completion_ms is None:
            completion_ms = self._last_completion_ms
        if completion_ms is None or completion_ms <= 0:
            return None
        return completion_ms - total_ms

    async def query(self, text: str, schema: SchemaDescriptor | None = None) -> QueryResult:
        """Answer ``text`` from the cache or the completion service.

        With a schema, the answer is structured (a model instance or decoded
        JSON) and only entries stored under the same schema, or untyped legacy
        entries, can match.
        """
        start = time.perf_counter()
        fingerprint = schema_fingerprint(schema) if schema is not None else None

        embedding = await self._embeddings.embed(text, input_type="query")
        results = await self._index.search_similar(embedding, 1, fingerprint)
        LOOKUP_LATENCY.labels(operation="query").observe(time.perf_counter() - start)

        top = self._best_hit(results)
        if top is not None:
            if schema is not None:
                response: Any = deserialize_response(schema, top.entry.response)
            else:
                response = top.entry.response

            if top.entry.id:
                await self._index.record_hit(top.entry.id)

            total_ms = _elapsed_ms(start)
            CACHE_HITS.labels(operation="query").inc()
            logger.debug(
                "cache_hit",
                entry_id=top.entry.id,
                score=round(top.score, 4),
                fingerprint=fingerprint,
            )
            return QueryResult(
                response=response,
                from_cache=True,
                similarity_score=top.score,
                total_time_ms=total_ms,
                time_saved_ms=self._time_saved(top.entry, total_ms),
            )

        CACHE_MISSES.labels(operation="query").inc()
        logger.debug(
            "cache_miss",
            best_score=round(results[0].score, 4) if results else None,
            fingerprint=fingerprint,
        )

        completion_start = time.perf_counter()
        if schema is not None:
            response = await self._completion.complete_structured(text, schema)
            stored = serialize_response(response)
        else:
            response = await self._completion.complete(text)
            stored = response
        completion_ms = _elapsed_ms(completion_start)
        COMPLETION_LATENCY.observe(completion_ms / 1000.0)
        self._last_completion_ms = completion_ms

        now = datetime.now(timezone.utc)
        entry_id = await self._index.store(
            CacheEntry(
                query=text,
                response=stored,
                embedding=embedding,
                created_at=now,
                hit_count=0,
                last_accessed_at=now,
                schema_fingerprint=fingerprint,
                metadata={
                    "completion_ms": round(completion_ms, 3),
                    "model": self._completion.model_id,
                },
            )
        )
        logger.debug("cache_store", entry_id=entry_id, fingerprint=fingerprint)

        return QueryResult(
            response=response,
            from_cache=False,
            total_time_ms=_elapsed_ms(start),
        )

    async def lookup(
        self,
        text: str,
        embedding: list[float] | None = None,
        fingerprint: str | None = None,
    ) -> LookupResult:
        """Search the cache without calling the completion service.

        A hit still increments the matched entry's hit count. Pass a
        precomputed ``embedding`` to skip the embedding call.
        """
        start = time.perf_counter()
        if embedding is None:
            embedding = await self._embeddings.embed(text, input_type="query")

        results = await self._index.search_similar(embedding, 1, fingerprint)
        lookup_ms = _elapsed_ms(start)
        LOOKUP_LATENCY.labels(operation="lookup").observe(lookup_ms / 1000.0)

        if not results:
            CACHE_MISSES.labels(operation="lookup").inc()
            return LookupResult(hit=False, query=text, lookup_time_ms=lookup_ms)

        top = results[0]
        if self._best_hit(results) is None:
            CACHE_MISSES.labels(operation="lookup").inc()
            return LookupResult(hit=False, score=top.score, query=text, lookup_time_ms=lookup_ms)

        if top.entry.id:
            await self._index.record_hit(top.entry.id)

        CACHE_HITS.labels(operation="lookup").inc()
        return LookupResult(
            hit=True,
            response=top.entry.response,
            score=top.score,
            query=text,
            lookup_time_ms=lookup_ms,
        )

    # =========================================================================
    # Pass-through
    # =========================================================================

    async def get_stats(self) -> CacheStats:
        return await self._index.get_stats()

    async def clear(self) -> int:
        return await self._index.clear()

    async def close(self) -> None:
        """Close the index, plus any collaborators built by ``from_settings``."""
        await self._index.close()
        owned, self._owned = self._owned, []
        for collaborator in owned:
            await collaborator.aclose()

    async def __aenter__(self) -> "SimilarityCacheEngine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
