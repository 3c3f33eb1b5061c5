import pytest

from services.media.tests.fakes import (
    FakeObjectStore,
    FakeRepository,
    FixedDurationExtractor,
)


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def extractor():
    return FixedDurationExtractor()
