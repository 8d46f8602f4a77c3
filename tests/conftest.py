# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import feedguard  # noqa: F401
except ImportError:
    raise ImportError("feedguard is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from feedguard.errors import ClassifierError
from tests._helpers import FakeClassifier, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def failing_classifier() -> FakeClassifier:
    return FakeClassifier(error=ClassifierError("Classifier API error: 500 - boom", status_code=500))


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    """Keep a developer's FEEDGUARD_* variables out of settings tests."""
    for name in ("FEEDGUARD_API_KEY", "FEEDGUARD_MODEL", "FEEDGUARD_API_URL"):
        monkeypatch.delenv(name, raising=False)
