# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Completion service protocol."""

from abc import ABC, abstractmethod
from typing import Any

from ..cache.schema import SchemaDescriptor


class CompletionService(ABC):
    """Turns a prompt into an answer, optionally constrained to a schema."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier of the model answering prompts."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Free-text completion."""

    @abstractmethod
    async def complete_structured(self, prompt: str, schema: SchemaDescriptor) -> Any:
        """Completion conforming to ``schema``.

        Returns a model instance for pydantic model schemas, or the decoded JSON
        value for JSON Schema dicts.
        """

    async def aclose(self) -> None:
        """Release held connections."""
        return None
