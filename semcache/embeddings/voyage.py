# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""VoyageAI embeddings over HTTP.

Calls ``POST {base_url}/embeddings``. Queries and documents are embedded with
different ``input_type`` hints, which Voyage uses to optimize retrieval.
"""

from typing import Any

import httpx
import structlog

from ..errors import ConfigurationError, UpstreamServiceError
from .base import EmbeddingService, InputType

logger = structlog.get_logger(__name__)

SERVICE_NAME = "voyage"
DEFAULT_MODEL = "voyage-3.5"
DEFAULT_BASE_URL = "https://api.voyageai.com/v1"

VOYAGE_MODELS: dict[str, dict[str, Any]] = {
    # Current generation
    "voyage-3.5": {"dimension": 1024, "description": "Latest general-purpose, best quality"},
    "voyage-3.5-lite": {"dimension": 1024, "description": "Optimized for latency and cost"},
    "voyage-3-large": {"dimension": 1024, "description": "High quality general-purpose"},
    "voyage-code-3": {"dimension": 1024, "description": "Optimized for code retrieval"},
    # Domain-specific
    "voyage-finance-2": {"dimension": 1024, "description": "Finance domain optimized"},
    "voyage-law-2": {"dimension": 1024, "description": "Legal domain optimized"},
    # Legacy
    "voyage-3": {"dimension": 1024, "description": "Previous generation, balanced"},
    "voyage-3-lite": {"dimension": 512, "description": "Previous generation, fast"},
    "voyage-code-2": {"dimension": 1536, "description": "Previous code model"},
}


class VoyageEmbeddings(EmbeddingService):
    """Embedding service backed by the VoyageAI REST API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if model not in VOYAGE_MODELS:
            raise ConfigurationError(
                f"Unknown Voyage model: {model}",
                details={"known_models": sorted(VOYAGE_MODELS)},
            )
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return VOYAGE_MODELS[self._model]["dimension"]

    async def _embed(self, inputs: str | list[str], input_type: InputType) -> list[dict[str, Any]]:
        try:
            resp = await self._client.post(
                f"{self._base_url}/embeddings",
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"input": inputs, "model": self._model, "input_type": input_type},
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(
                SERVICE_NAME,
                f"Voyage returned HTTP {e.response.status_code}",
                details={"status_code": e.response.status_code, "body": e.response.text[:500]},
            ) from e
        except httpx.RequestError as e:
            raise UpstreamServiceError(SERVICE_NAME, f"Voyage request failed: {e}") from e
        except ValueError as e:
            raise UpstreamServiceError(SERVICE_NAME, "Voyage returned invalid JSON") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise UpstreamServiceError(SERVICE_NAME, "No embedding returned from Voyage")
        # Voyage tags each item with its input position
        return sorted(data, key=lambda item: item.get("index", 0))

    @staticmethod
    def _vector(item: dict[str, Any]) -> list[float]:
        embedding = item.get("embedding")
        if not embedding:
            raise UpstreamServiceError(SERVICE_NAME, "Invalid embedding response structure")
        return [float(v) for v in embedding]

    async def embed(self, text: str, input_type: InputType = "query") -> list[float]:
        data = await self._embed(text, input_type)
        return self._vector(data[0])

    async def embed_batch(
        self, texts: list[str], input_type: InputType = "document"
    ) -> list[list[float]]:
        if not texts:
            return []

        data = await self._embed(texts, input_type)
        if len(data) != len(texts):
            raise UpstreamServiceError(
                SERVICE_NAME,
                "Batch embedding count mismatch",
                details={"expected": len(texts), "received": len(data)},
            )
        return [self._vector(item) for item in data]

    async def aclose(self) -> None:
        await self._client.aclose()
