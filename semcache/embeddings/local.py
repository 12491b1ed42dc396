# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Local embedding model wrapper.

Uses sentence-transformers/all-MiniLM-L6-v2 by default (~22MB, 384 dims).
Runs in process with no external API calls.
"""

import asyncio
from typing import Any

import structlog

from ..errors import UpstreamServiceError
from .base import EmbeddingService, InputType

logger = structlog.get_logger(__name__)

SERVICE_NAME = "sentence-transformers"
DEFAULT_MODEL = "all-MiniLM-L6-v2"

MODEL_DIMENSIONS: dict[str, int] = {
    "all-MiniLM-L6-v2": 384,
    "all-MiniLM-L12-v2": 384,
    "all-mpnet-base-v2": 768,
}

# Lazy-loaded models, one per name
_models: dict[str, Any] = {}


def _get_model(model_name: str) -> Any:
    """Lazy-load a sentence-transformers model."""
    model = _models.get(model_name)
    if model is None:
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model", model=model_name)
        model = SentenceTransformer(model_name)
        _models[model_name] = model
        logger.info("Embedding model loaded", model=model_name)
    return model


class LocalEmbeddings(EmbeddingService):
    """Wraps sentence-transformers for in-process embeddings.

    The input type hint is accepted for interface parity and ignored.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL) -> None:
        self._model_name = model_name
        self._dim = MODEL_DIMENSIONS.get(model_name)

    @property
    def dimension(self) -> int:
        if self._dim is None:
            self._dim = int(_get_model(self._model_name).get_sentence_embedding_dimension())
        return self._dim

    def _encode(self, texts: list[str]) -> list[list[float]]:
        model = _get_model(self._model_name)
        vectors = model.encode(texts, normalize_embeddings=True)
        return [[float(v) for v in vec] for vec in vectors]

    async def embed(self, text: str, input_type: InputType = "query") -> list[float]:
        vectors = await self.embed_batch([text], input_type)
        return vectors[0]

    async def embed_batch(
        self, texts: list[str], input_type: InputType = "document"
    ) -> list[list[float]]:
        if not texts:
            return []

        try:
            vectors = await asyncio.to_thread(self._encode, texts)
        except (OSError, RuntimeError) as e:
            raise UpstreamServiceError(SERVICE_NAME, f"Local embedding failed: {e}") from e

        if len(vectors) != len(texts):
            raise UpstreamServiceError(
                SERVICE_NAME,
                "Batch embedding count mismatch",
                details={"expected": len(texts), "received": len(vectors)},
            )
        return vectors
