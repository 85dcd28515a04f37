"""Tests for RelaySettings.from_env."""

import pytest

from app.config import DEFAULT_PRICE_IDS, DEFAULT_PRICE_SERVICE_URL, RelaySettings


class TestRelaySettings:
    def test_defaults(self):
        settings = RelaySettings.from_env({})

        assert settings.port == 3000
        assert settings.price_service_url == DEFAULT_PRICE_SERVICE_URL
        assert settings.price_ids == DEFAULT_PRICE_IDS
        assert settings.feed_source == "hermes"
        assert settings.broadcast_interval == 5.0
        assert settings.max_price_age == 60.0
        assert not settings.pusher_configured

    def test_reads_environment(self):
        settings = RelaySettings.from_env(
            {
                "PORT": "8080",
                "PUSHER_APP_ID": "123",
                "PUSHER_KEY": "key",
                "PUSHER_SECRET": "secret",
                "PUSHER_CLUSTER": "eu",
                "PRICE_FEED_SOURCE": "Simulator",
                "BROADCAST_INTERVAL": "2.5",
                "LOG_LEVEL": "debug",
            }
        )

        assert settings.port == 8080
        assert settings.pusher_configured
        assert settings.feed_source == "simulator"
        assert settings.broadcast_interval == 2.5
        assert settings.log_level == "DEBUG"

    def test_blank_values_use_defaults(self):
        settings = RelaySettings.from_env({"PORT": "  ", "PRICE_IDS": " , "})

        assert settings.port == 3000
        assert settings.price_ids == DEFAULT_PRICE_IDS

    def test_price_ids_are_normalized_and_deduplicated(self):
        settings = RelaySettings.from_env({"PRICE_IDS": "AB12, 0xab12 ,0xCD34"})
        assert settings.price_ids == ("0xab12", "0xcd34")

    def test_default_ids_are_normalized(self):
        assert all(pid == pid.lower() and pid.startswith("0x") for pid in DEFAULT_PRICE_IDS)
        assert len(DEFAULT_PRICE_IDS) == 3

    def test_secret_not_in_repr(self):
        assert "hunter2" not in repr(RelaySettings(pusher_secret="hunter2"))

    def test_bad_port_raises(self):
        with pytest.raises(ValueError):
            RelaySettings.from_env({"PORT": "http"})
