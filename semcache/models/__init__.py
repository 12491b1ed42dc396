# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""semcache data models."""

from .cache import (
    CacheEntry,
    CacheStats,
    LookupResult,
    QueryResult,
    SimilarityResult,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "LookupResult",
    "QueryResult",
    "SimilarityResult",
]
