"""
Tests for .env and environment configuration.
"""

import pytest

from cpuid_scan.utils import config
from cpuid_scan.utils.config import (
    _parse_env_file,
    get_config,
    get_config_int,
    get_config_list,
    get_config_status,
    get_ignored_features,
    get_max_file_size,
    list_config_keys,
    load_env,
    reset_config,
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Start every test without cached .env values or scanner variables."""
    for key in config.CONFIG_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    # Mark the empty cache as loaded so a stray .env file is not picked up
    monkeypatch.setattr(config, "_env_loaded", True)
    yield
    reset_config()


class TestParseEnvFile:
    """Tests for _parse_env_file()."""

    def test_parse_values(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text(
            "# scanner settings\n"
            "\n"
            "CPUID_SCAN_LOG_LEVEL=DEBUG\n"
            "CPUID_SCAN_IGNORE=\"SSE, SSE2\"\n"
            "CPUID_SCAN_JOBS='4'\n"
            "not a setting\n"
        )

        values = _parse_env_file(env)

        assert values == {
            "CPUID_SCAN_LOG_LEVEL": "DEBUG",
            "CPUID_SCAN_IGNORE": "SSE, SSE2",
            "CPUID_SCAN_JOBS": "4",
        }

    def test_missing_file(self, tmp_path):
        assert _parse_env_file(tmp_path / "missing.env") == {}


class TestLoadEnv:
    """Tests for load_env() and the lookup order."""

    def test_env_file_values(self, tmp_path, monkeypatch):
        env = tmp_path / ".env"
        env.write_text("CPUID_SCAN_JOBS=3\n")
        monkeypatch.setattr(config, "_env_loaded", False)

        load_env(env)

        assert get_config_int("CPUID_SCAN_JOBS") == 3

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        env = tmp_path / ".env"
        env.write_text("CPUID_SCAN_JOBS=3\n")
        monkeypatch.setattr(config, "_env_loaded", False)
        load_env(env)

        monkeypatch.setenv("CPUID_SCAN_JOBS", "8")

        assert get_config("CPUID_SCAN_JOBS") == "8"
        assert get_config_status()["CPUID_SCAN_JOBS"]["source"] == "environment"

    def test_status_reports_file_source(self, tmp_path, monkeypatch):
        env = tmp_path / ".env"
        env.write_text("CPUID_SCAN_IGNORE=AVX\n")
        monkeypatch.setattr(config, "_env_loaded", False)
        load_env(env)

        status = get_config_status()

        assert status["CPUID_SCAN_IGNORE"] == {"set": True, "source": ".env file", "value": "AVX"}
        assert status["CPUID_SCAN_JOBS"]["set"] is False


class TestTypedGetters:
    """Tests for the typed configuration getters."""

    def test_defaults(self):
        assert get_config("CPUID_SCAN_LOG_LEVEL") is None
        assert get_config("CPUID_SCAN_LOG_LEVEL", "WARNING") == "WARNING"
        assert get_config_int("CPUID_SCAN_JOBS", 1) == 1
        assert get_config_list("CPUID_SCAN_IGNORE") == []

    def test_bad_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("CPUID_SCAN_JOBS", "many")
        assert get_config_int("CPUID_SCAN_JOBS", 2) == 2

    def test_list(self, monkeypatch):
        monkeypatch.setenv("CPUID_SCAN_IGNORE", "SSE, ,AVX ,")
        assert get_config_list("CPUID_SCAN_IGNORE") == ["SSE", "AVX"]

    def test_ignored_features(self, monkeypatch):
        assert get_ignored_features() == []
        monkeypatch.setenv("CPUID_SCAN_IGNORE", "sse, avx512f")
        assert get_ignored_features() == ["SSE", "AVX512F"]

    def test_max_file_size(self, monkeypatch):
        assert get_max_file_size() == 500 * 1024 * 1024
        monkeypatch.setenv("CPUID_SCAN_MAX_FILE_SIZE_MB", "2")
        assert get_max_file_size() == 2 * 1024 * 1024

    def test_list_config_keys(self):
        keys = list_config_keys()
        assert "CPUID_SCAN_MAX_FILE_SIZE_MB" in keys
        keys.clear()
        assert list_config_keys()
