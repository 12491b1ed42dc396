# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Semantic cache decision primitives.

The engine lives in ``semcache.cache.engine``; it is not imported here because
collaborator protocols depend on the schema codec in this package.
"""

from .fingerprint import schema_fingerprint
from .schema import (
    SchemaDescriptor,
    deserialize_response,
    schema_definition,
    serialize_response,
)
from .similarity import cosine_similarity

__all__ = [
    "SchemaDescriptor",
    "cosine_similarity",
    "deserialize_response",
    "schema_definition",
    "schema_fingerprint",
    "serialize_response",
]
