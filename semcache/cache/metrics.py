# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Prometheus metrics for the semantic cache.

- semcache_hits_total / semcache_misses_total (label: operation)
- semcache_lookup_latency_seconds (label: operation)
- semcache_completion_latency_seconds
"""

from prometheus_client import Counter, Histogram

CACHE_HITS = Counter(
    "semcache_hits_total",
    "Total semantic cache hits",
    ["operation"],
)
CACHE_MISSES = Counter(
    "semcache_misses_total",
    "Total semantic cache misses",
    ["operation"],
)
LOOKUP_LATENCY = Histogram(
    "semcache_lookup_latency_seconds",
    "Embedding plus index search latency",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
COMPLETION_LATENCY = Histogram(
    "semcache_completion_latency_seconds",
    "Completion service latency on cache misses",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)
