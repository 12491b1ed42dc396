# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pytest configuration and shared fixtures."""

import pytest

from semcache.config import Settings, clear_settings_cache
from semcache.index.memory import InMemoryVectorIndex

from fakes import FakeCompletionService, FakeEmbeddingService


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Reset settings cache and keep a developer .env out of tests."""
    monkeypatch.setitem(Settings.model_config, "env_file", None)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def completion() -> FakeCompletionService:
    return FakeCompletionService()


@pytest.fixture
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()
