"""Fixtures for relay tests."""

import pytest

from relay_fakes import FakeFeedSource, RecordingPublisher


@pytest.fixture
def source():
    return FakeFeedSource()


@pytest.fixture
def publisher():
    return RecordingPublisher()
