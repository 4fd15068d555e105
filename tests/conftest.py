"""Pytest fixtures for the sync engine tests."""

import pytest

from fakes import FakeApi, FakeClock


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
