# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Semantic cache error codes.

Every error raised by semcache carries a machine-readable code and a human
message, plus optional details and a suggestion:

```json
{
  "error": {
    "code": "UPSTREAM_SERVICE_ERROR",
    "message": "Voyage returned HTTP 503",
    "details": {"service": "voyage", "status_code": 503},
    "suggestion": "Check connectivity and credentials of the failing service"
  }
}
```

The engine itself never wraps or retries collaborator failures; adapters raise
``UpstreamServiceError`` and the engine lets it through unchanged.
"""

from enum import Enum
from typing import Any


class CacheErrorCode(str, Enum):
    """Standard semcache error codes."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    UPSTREAM_SERVICE_ERROR = "UPSTREAM_SERVICE_ERROR"
    DESERIALIZATION_ERROR = "DESERIALIZATION_ERROR"


ERROR_CODE_SUGGESTIONS: dict[CacheErrorCode, str] = {
    CacheErrorCode.CONFIGURATION_ERROR: "Check the cache settings and constructor arguments",
    CacheErrorCode.UPSTREAM_SERVICE_ERROR: "Check connectivity and credentials of the failing service",
    CacheErrorCode.DESERIALIZATION_ERROR: "The stored response no longer matches the schema; clear the cache",
}


class SemanticCacheError(Exception):
    """Base exception for semcache errors.

    Usage:
        raise SemanticCacheError(
            code=CacheErrorCode.CONFIGURATION_ERROR,
            message="Threshold must be between 0 and 1",
            details={"threshold": 1.2},
        )
    """

    def __init__(
        self,
        code: CacheErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, CacheErrorCode) else CacheErrorCode(code)
        self.message = message
        self.details = details
        self.suggestion = ERROR_CODE_SUGGESTIONS.get(self.code)
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "suggestion": self.suggestion,
            }
        }


class ConfigurationError(SemanticCacheError):
    """Raised when a setting or argument is out of its allowed range."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=CacheErrorCode.CONFIGURATION_ERROR,
            message=message,
            details=details,
        )


class UpstreamServiceError(SemanticCacheError):
    """Raised by embedding, index and completion adapters.

    ``service`` names the collaborator that failed (``voyage``, ``openai``,
    ``pgvector``, ...).
    """

    def __init__(
        self,
        service: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=CacheErrorCode.UPSTREAM_SERVICE_ERROR,
            message=message,
            details={"service": service, **(details or {})},
        )
        self.service = service


class DeserializationError(SemanticCacheError):
    """Raised when a stored structured response does not parse against its schema."""

    def __init__(
        self,
        schema: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=CacheErrorCode.DESERIALIZATION_ERROR,
            message=message,
            details={"schema": schema, **(details or {})},
        )
        self.schema = schema
