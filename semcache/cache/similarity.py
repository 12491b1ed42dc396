# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Reference cosine similarity.

The same function the ANN service computes, for indexes that are not backed by
one and for tests.
"""

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|).

    Returns 0.0 when the lengths differ, a vector is empty or a norm is zero.
    Never raises.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    # Identical vectors must score exactly 1.0 regardless of rounding
    if np.array_equal(va, vb):
        return 1.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    if not np.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


def to_score(similarity: float) -> float:
    """Clamp a cosine similarity into the [0, 1] score range."""
    return max(0.0, min(1.0, similarity))
