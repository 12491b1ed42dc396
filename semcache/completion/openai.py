# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""OpenAI-compatible chat completions over HTTP.

Structured calls send ``response_format={"type": "json_schema", ...}`` and
decode the returned JSON with the same codec the cache uses on a hit.
"""

import re
from typing import Any

import httpx
import structlog

from ..cache.schema import (
    SchemaDescriptor,
    deserialize_response,
    schema_definition,
    schema_name,
)
from ..errors import DeserializationError, UpstreamServiceError
from .base import CompletionService

logger = structlog.get_logger(__name__)

SERVICE_NAME = "openai"
DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"

_SCHEMA_NAME = re.compile(r"[^a-zA-Z0-9_-]")


class OpenAICompletion(CompletionService):
    """Completion service for any OpenAI-compatible ``/chat/completions`` API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def model_id(self) -> str:
        return self._model

    async def _chat(self, prompt: str, response_format: dict[str, Any] | None = None) -> str:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if response_format is not None:
            body["response_format"] = response_format

        try:
            resp = await self._client.post(
                f"{self._base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self._api_key}"},
                json=body,
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamServiceError(
                SERVICE_NAME,
                f"Completion API returned HTTP {e.response.status_code}",
                details={"status_code": e.response.status_code, "body": e.response.text[:500]},
            ) from e
        except httpx.RequestError as e:
            raise UpstreamServiceError(SERVICE_NAME, f"Completion request failed: {e}") from e
        except ValueError as e:
            raise UpstreamServiceError(SERVICE_NAME, "Completion API returned invalid JSON") from e

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamServiceError(SERVICE_NAME, "Unexpected response format from completion API") from e
        return self._content_text(content)

    @staticmethod
    def _content_text(content: Any) -> str:
        if isinstance(content, str):
            return content

        # Content may arrive as a list of content parts
        if isinstance(content, list):
            parts = []
            for block in content:
                if isinstance(block, str):
                    parts.append(block)
                elif isinstance(block, dict) and "text" in block:
                    parts.append(str(block["text"]))
            return "".join(parts)

        raise UpstreamServiceError(SERVICE_NAME, "Unexpected response format from completion API")

    async def complete(self, prompt: str) -> str:
        return await self._chat(prompt)

    async def complete_structured(self, prompt: str, schema: SchemaDescriptor) -> Any:
        name = _SCHEMA_NAME.sub("_", schema_name(schema))[:64] or "response"
        content = await self._chat(
            prompt,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": name, "schema": schema_definition(schema)},
            },
        )
        try:
            return deserialize_response(schema, content)
        except DeserializationError as e:
            raise UpstreamServiceError(
                SERVICE_NAME,
                f"Completion did not match schema '{name}'",
                details=e.details,
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()
