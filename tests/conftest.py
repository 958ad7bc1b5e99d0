from __future__ import annotations

import pytest

from core.store import InMemoryStore

from tests.fakes import FakeProvider


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
