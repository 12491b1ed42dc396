# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Schema fingerprints.

Partitions cache entries by expected response shape. The hash is taken over
the canonical JSON of the schema definition, never over example data, so it is
stable across process restarts.
"""

import hashlib
import json
from typing import Any

from .schema import SchemaDescriptor, schema_definition

FINGERPRINT_PREFIX = "schema_"
FINGERPRINT_HEX_LENGTH = 16


def canonical_json(payload: Any) -> str:
    """Sorted-key, compact JSON form used as hash input."""
    return json.dumps(payload, ensure_ascii=True, sort_keys=True, separators=(",", ":"))


def schema_fingerprint(descriptor: SchemaDescriptor) -> str:
    """Return ``schema_`` followed by 16 hex characters of SHA-256."""
    canonical = canonical_json(schema_definition(descriptor))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{FINGERPRINT_PREFIX}{digest[:FINGERPRINT_HEX_LENGTH]}"
