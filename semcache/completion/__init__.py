# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Completion services."""

from .base import CompletionService
from .openai import OpenAICompletion

__all__ = [
    "CompletionService",
    "OpenAICompletion",
]
