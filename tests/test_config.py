"""
Configuration loading and validation tests.
"""

import os
from unittest.mock import patch

import pytest

from flightboard.utils.config import FlightBoardConfig, get_config, load_config, reset_config


class TestFlightBoardConfig:
    """Test defaults and validators."""

    def test_defaults(self):
        config = FlightBoardConfig()
        assert config.fresh_threshold_seconds == 30
        assert config.cache_ttl_seconds == 120
        assert config.refresh_lock_ttl_seconds == 60
        assert config.refresh_workers == 5
        assert config.refresh_queue_size == 20
        assert config.airlabs_base_url == "https://airlabs.co/api/v9"

    def test_log_level_normalized(self):
        assert FlightBoardConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            FlightBoardConfig(log_level="LOUD")

    def test_fresh_threshold_must_be_below_ttl(self):
        with pytest.raises(ValueError):
            FlightBoardConfig(fresh_threshold_seconds=120, cache_ttl_seconds=120)

    def test_base_url_trailing_slash(self):
        assert FlightBoardConfig(airlabs_base_url="https://x.test/api/").airlabs_base_url == "https://x.test/api"

    def test_valkey_config(self):
        config = FlightBoardConfig(valkey_host="cache", valkey_port=6390, valkey_ssl=True, valkey_password="pw")
        valkey = config.valkey_config()
        assert valkey.host == "cache"
        assert valkey.port == 6390
        assert valkey.ssl is True
        assert valkey.password == "pw"


class TestLoadConfig:
    """Test environment loading."""

    def test_reads_environment(self):
        env = {
            "AIRLABS_API_KEY": "k",
            "FRESH_THRESHOLD_SECONDS": "10",
            "CACHE_TTL_SECONDS": "60",
            "REFRESH_WORKERS": "3",
            "USE_VALKEY": "false",
            "LOG_LEVEL": "warning",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config(env_file="does-not-exist.env")

        assert config.airlabs_api_key == "k"
        assert config.fresh_threshold_seconds == 10
        assert config.cache_ttl_seconds == 60
        assert config.refresh_workers == 3
        assert config.use_valkey is False
        assert config.log_level == "WARNING"

    def test_invalid_environment_raises_value_error(self):
        with patch.dict(os.environ, {"VALKEY_PORT": "70000"}, clear=True):
            with pytest.raises(ValueError, match="Configuration validation failed"):
                load_config(env_file="does-not-exist.env")

    def test_get_config_is_cached(self):
        reset_config()
        try:
            with patch.dict(os.environ, {}, clear=True):
                first = get_config()
                second = get_config()
            assert first is second
        finally:
            reset_config()
