"""Shared fixtures for the lurk_spec test suite."""

import pytest

from lurk_spec.store import Store


@pytest.fixture
def store() -> Store:
    return Store()
