# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Structured response codec.

A schema descriptor is either a pydantic model class or a JSON Schema dict.
Structured answers are always stored as JSON text and parsed back on a hit.
"""

import json
from typing import Any, Union

import jsonschema
from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError, DeserializationError

SchemaDescriptor = Union[type[BaseModel], dict[str, Any]]


def _is_model(descriptor: Any) -> bool:
    return isinstance(descriptor, type) and issubclass(descriptor, BaseModel)


def schema_definition(descriptor: SchemaDescriptor) -> dict[str, Any]:
    """Return the JSON Schema describing the expected response shape."""
    if _is_model(descriptor):
        return descriptor.model_json_schema()
    if isinstance(descriptor, dict):
        return descriptor
    raise ConfigurationError(
        f"Unsupported schema descriptor: {type(descriptor).__name__}",
        details={"expected": "pydantic model class or JSON Schema dict"},
    )


def schema_name(descriptor: SchemaDescriptor) -> str:
    """Short name for the schema, used in completion requests and errors."""
    if _is_model(descriptor):
        return descriptor.__name__
    if isinstance(descriptor, dict):
        return str(descriptor.get("title") or "response")
    raise ConfigurationError(f"Unsupported schema descriptor: {type(descriptor).__name__}")


def serialize_response(value: Any) -> str:
    """Serialize a structured answer to the JSON text stored in the index."""
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def deserialize_response(descriptor: SchemaDescriptor, text: str) -> Any:
    """Parse stored JSON text back into the shape the descriptor expects.

    Raises:
        DeserializationError: the text is not valid JSON, or the value does
            not validate against the model or JSON Schema.
    """
    name = schema_name(descriptor)
    try:
        if _is_model(descriptor):
            return descriptor.model_validate_json(text)
        value = json.loads(text)
        jsonschema.validate(value, descriptor)
        return value
    except (
        ValidationError,
        json.JSONDecodeError,
        TypeError,
        jsonschema.ValidationError,
        jsonschema.SchemaError,
    ) as e:
        raise DeserializationError(
            schema=name,
            message=f"Stored response does not match schema '{name}'",
            details={"reason": getattr(e, "message", str(e))},
        ) from e
