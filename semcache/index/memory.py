# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""In-memory vector index.

Exact cosine ranking over every stored entry. Suitable for tests and
single-process use; state is lost on exit.
"""

import itertools
from datetime import datetime, timezone
from typing import Callable

import structlog

from ..cache.similarity import cosine_similarity, to_score
from ..models import CacheEntry, CacheStats, SimilarityResult
from .base import VectorIndex

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryVectorIndex(VectorIndex):
    """Reference index ranking strictly by cosine similarity.

    Ties keep insertion order, so results are reproducible.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._ids = itertools.count(1)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def store(self, entry: CacheEntry) -> str:
        entry_id = f"mem_{next(self._ids)}"
        self._entries[entry_id] = entry.model_copy(update={"id": entry_id}, deep=True)
        logger.debug("index_store", entry_id=entry_id, fingerprint=entry.schema_fingerprint)
        return entry_id

    async def search_similar(
        self,
        embedding: list[float],
        limit: int = 5,
        fingerprint: str | None = None,
    ) -> list[SimilarityResult]:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        scored = [
            (cosine_similarity(embedding, entry.embedding), entry)
            for entry in self._entries.values()
            if entry.matches_fingerprint(fingerprint)
        ]
        # sorted() is stable: equal similarities stay in insertion order
        ranked = sorted(scored, key=lambda pair: pair[0], reverse=True)

        return [
            SimilarityResult(entry=entry.model_copy(deep=True), score=to_score(similarity))
            for similarity, entry in ranked[:limit]
        ]

    async def record_hit(self, entry_id: str) -> None:
        entry = self._entries.get(entry_id)
        if entry is None:
            return
        entry.hit_count += 1
        entry.last_accessed_at = self._clock()

    async def get_stats(self) -> CacheStats:
        entries = list(self._entries.values())
        if not entries:
            return CacheStats()

        created = [entry.created_at for entry in entries]
        return CacheStats(
            total_entries=len(entries),
            total_hits=sum(entry.hit_count for entry in entries),
            oldest_entry=min(created),
            newest_entry=max(created),
            approx_size_bytes=sum(len(entry.model_dump_json()) for entry in entries),
        )

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        logger.info("index_clear", deleted=count)
        return count

    async def close(self) -> None:
        return None
