"""Tests for configuration and logging setup."""

import logging

import pytest

from asar_toolkit.config import ToolkitConfig, configure_logging


class TestToolkitConfig:
    def test_defaults(self):
        config = ToolkitConfig()
        assert config.max_workers is None
        assert config.text_encoding == "utf-8"
        assert config.id_prefix == "R"

    def test_from_env(self):
        config = ToolkitConfig.from_env(
            {
                "ASAR_TOOLKIT_MAX_WORKERS": "3",
                "ASAR_TOOLKIT_LOG_LEVEL": "debug",
                "ASAR_TOOLKIT_FETCH_TIMEOUT": "2.5",
                "ASAR_TOOLKIT_ID_PREFIX": "A",
                "UNRELATED": "x",
            }
        )
        assert config.max_workers == 3
        assert config.log_level == "DEBUG"
        assert config.fetch_timeout == 2.5
        assert config.id_prefix == "A"

    def test_from_env_empty_max_workers(self):
        assert ToolkitConfig.from_env({"ASAR_TOOLKIT_MAX_WORKERS": ""}).max_workers is None

    def test_from_env_defaults(self):
        assert ToolkitConfig.from_env({}) == ToolkitConfig()

    def test_invalid_max_workers(self):
        with pytest.raises(ValueError, match="max_workers"):
            ToolkitConfig(max_workers=0)

    def test_invalid_timeout(self):
        with pytest.raises(ValueError, match="fetch_timeout"):
            ToolkitConfig(fetch_timeout=0)

    def test_copy_is_independent(self):
        config = ToolkitConfig()
        other = config.copy()
        other.id_prefix = "Z"
        assert config.id_prefix == "R"


class TestConfigureLogging:
    def test_sets_root_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging("debug")
            assert root.level == logging.DEBUG
            configure_logging(logging.WARNING)
            assert root.level == logging.WARNING
        finally:
            root.setLevel(previous)

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="NOPE"):
            configure_logging("nope")
