from __future__ import annotations

import pytest

from fakes import FakeDatabase
from zircats.store import Store


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def store(db: FakeDatabase) -> Store:
    return Store(db)
