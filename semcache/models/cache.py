# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Semantic cache data model.

Stored entries, search results and the results returned to callers of the
engine.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Stored entries
# =============================================================================


class CacheEntry(BaseModel):
    """A stored query/response pair with its embedding."""

    id: str | None = Field(None, description="Assigned by the index on store")
    query: str = Field(..., description="Original query text")
    response: str = Field(..., description="Plain answer or JSON text of a structured answer")
    embedding: list[float] = Field(..., description="Embedding of the query")
    created_at: datetime
    hit_count: int = Field(0, ge=0)
    last_accessed_at: datetime
    schema_fingerprint: str | None = Field(
        None, description="Fingerprint of the response schema; None matches any filter"
    )
    metadata: dict[str, Any] | None = None

    def matches_fingerprint(self, fingerprint: str | None) -> bool:
        """Untyped entries match every filter; typed entries only their own."""
        if fingerprint is None or self.schema_fingerprint is None:
            return True
        return self.schema_fingerprint == fingerprint


class SimilarityResult(BaseModel):
    """One ranked search result."""

    entry: CacheEntry
    score: float = Field(..., ge=0.0, le=1.0, description="Cosine similarity, 1.0 = same direction")


class CacheStats(BaseModel):
    """Aggregate statistics, computed live by the index."""

    total_entries: int = 0
    total_hits: int = 0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
    approx_size_bytes: int = 0


# =============================================================================
# Engine results
# =============================================================================


class QueryResult(BaseModel):
    """Result of ``SimilarityCacheEngine.query``.

    ``response`` is a string for untyped queries, or the parsed structured value
    when the query carried a schema.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    response: Any
    from_cache: bool
    similarity_score: float | None = None
    total_time_ms: float
    time_saved_ms: float | None = None


class LookupResult(BaseModel):
    """Result of ``SimilarityCacheEngine.lookup``."""

    hit: bool
    response: str | None = None
    score: float | None = None
    query: str
    lookup_time_ms: float
