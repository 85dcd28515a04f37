"""Pytest configuration and fixtures."""

import os

import pytest

RELAY_ENV_PREFIXES = ("PUSHER_", "PRICE_", "BROADCAST_", "MAX_PRICE_AGE")


@pytest.fixture(autouse=True)
def _isolate_relay_env(monkeypatch):
    """Keep a developer's PUSHER_*/PRICE_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith(RELAY_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
