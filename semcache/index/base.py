# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Vector index protocol.

Implementations:
- PgVectorIndex: PostgreSQL + pgvector HNSW index (production)
- InMemoryVectorIndex: exact cosine ranking in process (dev/test)
"""

from abc import ABC, abstractmethod

from ..models import CacheEntry, CacheStats, SimilarityResult

# Raw candidates examined by the ANN search, per requested result
CANDIDATE_MULTIPLIER = 20
# Results fetched before fingerprint post-filtering, per requested result
PREFILTER_MULTIPLIER = 5


def candidate_window(limit: int, filtered: bool) -> tuple[int, int]:
    """Return ``(num_candidates, prefilter_limit)`` for a search.

    Fingerprint post-filtering can discard top results, so filtered searches
    fetch ``limit * PREFILTER_MULTIPLIER`` rows before truncating to ``limit``.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    num_candidates = limit * CANDIDATE_MULTIPLIER
    prefilter_limit = limit * PREFILTER_MULTIPLIER if filtered else limit
    return num_candidates, prefilter_limit


class VectorIndex(ABC):
    """Stores cache entries and returns the most similar ones to a query vector."""

    @abstractmethod
    async def store(self, entry: CacheEntry) -> str:
        """Persist one new entry and return its fresh, never-reused id.

        ``entry.id`` is ignored. Duplicates are allowed.
        """

    @abstractmethod
    async def search_similar(
        self,
        embedding: list[float],
        limit: int = 5,
        fingerprint: str | None = None,
    ) -> list[SimilarityResult]:
        """Return up to ``limit`` entries ordered by descending score.

        With a fingerprint, only entries carrying that fingerprint or none at
        all are eligible. Returns an empty list when nothing matches.
        """

    @abstractmethod
    async def record_hit(self, entry_id: str) -> None:
        """Increment the hit count by one and stamp the access time."""

    @abstractmethod
    async def get_stats(self) -> CacheStats:
        """Aggregate statistics computed live."""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every entry. Returns the number deleted."""

    @abstractmethod
    async def close(self) -> None:
        """Release held connections. Safe to call more than once."""
