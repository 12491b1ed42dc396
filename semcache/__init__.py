# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""semcache - semantic cache for language-model queries."""

from .cache.engine import SimilarityCacheEngine
from .cache.fingerprint import schema_fingerprint
from .config import DEFAULT_SIMILARITY_THRESHOLD, Settings, get_settings
from .errors import (
    CacheErrorCode,
    ConfigurationError,
    DeserializationError,
    SemanticCacheError,
    UpstreamServiceError,
)
from .models import CacheEntry, CacheStats, LookupResult, QueryResult, SimilarityResult

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_SIMILARITY_THRESHOLD",
    "CacheEntry",
    "CacheErrorCode",
    "CacheStats",
    "ConfigurationError",
    "DeserializationError",
    "LookupResult",
    "QueryResult",
    "SemanticCacheError",
    "Settings",
    "SimilarityCacheEngine",
    "SimilarityResult",
    "UpstreamServiceError",
    "get_settings",
    "schema_fingerprint",
]
