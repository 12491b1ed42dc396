# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Vector indexes for the semantic cache."""

from .base import (
    CANDIDATE_MULTIPLIER,
    PREFILTER_MULTIPLIER,
    VectorIndex,
    candidate_window,
)
from .memory import InMemoryVectorIndex
from .pgvector import PgVectorIndex

__all__ = [
    "CANDIDATE_MULTIPLIER",
    "PREFILTER_MULTIPLIER",
    "InMemoryVectorIndex",
    "PgVectorIndex",
    "VectorIndex",
    "candidate_window",
]
