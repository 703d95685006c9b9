import pytest

from tests.fakes import FakeFeed, FakeRepo


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def feed():
    return FakeFeed()
