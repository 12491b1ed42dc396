# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Embedding services."""

from .base import EmbeddingService, InputType
from .local import LocalEmbeddings
from .voyage import VOYAGE_MODELS, VoyageEmbeddings

__all__ = [
    "EmbeddingService",
    "InputType",
    "LocalEmbeddings",
    "VOYAGE_MODELS",
    "VoyageEmbeddings",
]
