# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Embedding service protocol."""

from abc import ABC, abstractmethod
from typing import Literal

InputType = Literal["query", "document"]


class EmbeddingService(ABC):
    """Converts text into fixed-length vectors.

    Implementations:
    - VoyageEmbeddings: VoyageAI HTTP API
    - LocalEmbeddings: sentence-transformers model in process
    """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this service returns."""

    @abstractmethod
    async def embed(self, text: str, input_type: InputType = "query") -> list[float]:
        """Embed one text."""

    @abstractmethod
    async def embed_batch(
        self, texts: list[str], input_type: InputType = "document"
    ) -> list[list[float]]:
        """Embed several texts; the result has one vector per input, in order."""

    async def aclose(self) -> None:
        """Release held connections."""
        return None
