"""Unit tests for mirrortube.config - Settings loading and validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from mirrortube.config import (
    DEFAULT_ENDPOINTS,
    FetchSettings,
    LoggingSettings,
    PoolSettings,
    Settings,
    format_validation_error,
)

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep stray mirrortube.yaml / .env files out of these tests."""
    monkeypatch.chdir(tmp_path)


# ---- Sub-model defaults ------------------------------------------------------


class TestPoolSettings:
    """PoolSettings defaults and validation."""

    def test_default_values(self) -> None:
        s = PoolSettings()
        assert s.endpoints == DEFAULT_ENDPOINTS
        assert s.probe_path == "/trending?region=US"
        assert s.probe_timeout == 1.5
        assert s.probe_on_startup is True

    def test_defaults_not_shared(self) -> None:
        s = PoolSettings()
        s.endpoints.append("https://extra.test")
        assert "https://extra.test" not in PoolSettings().endpoints

    def test_empty_endpoints_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PoolSettings(endpoints=[])

    def test_blank_endpoint_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PoolSettings(endpoints=["https://a.test", "  "])

    def test_trailing_slash_stripped(self) -> None:
        s = PoolSettings(endpoints=["https://a.test/"])
        assert s.endpoints == ["https://a.test"]

    def test_zero_probe_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PoolSettings(probe_timeout=0)


class TestFetchSettings:
    """FetchSettings defaults and constraints."""

    def test_default_values(self) -> None:
        s = FetchSettings()
        assert s.listing_timeout == 10.0
        assert s.stream_timeout == 15.0
        assert s.attempts_per_endpoint == 1
        assert s.region == "US"

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FetchSettings(attempts_per_endpoint=0)

    def test_bad_region_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FetchSettings(region="USA")


class TestLoggingSettings:
    """LoggingSettings defaults."""

    def test_default_format(self) -> None:
        s = LoggingSettings()
        assert s.level == "WARNING"
        assert s.format == "console"
        assert s.file is None

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LoggingSettings(format="xml")  # type: ignore[arg-type]


# ---- Main settings -----------------------------------------------------------


class TestSettings:
    """Top-level Settings construction and env overrides."""

    def test_default_construction(self) -> None:
        s = Settings()
        assert isinstance(s.pool, PoolSettings)
        assert isinstance(s.fetch, FetchSettings)
        assert isinstance(s.logging, LoggingSettings)

    def test_nested_env_var_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MIRRORTUBE_FETCH__STREAM_TIMEOUT", "20")
        s = Settings()
        assert s.fetch.stream_timeout == 20.0

    def test_endpoint_list_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(
            "MIRRORTUBE_POOL__ENDPOINTS", '["https://x.test/", "https://y.test"]'
        )
        s = Settings()
        assert s.pool.endpoints == ["https://x.test", "https://y.test"]

    def test_load_with_overrides(self) -> None:
        s = Settings.load(pool={"endpoints": ["https://only.test"]})
        assert s.pool.endpoints == ["https://only.test"]
        assert s.pool.probe_timeout == 1.5

    def test_extra_fields_ignored(self) -> None:
        s = Settings(unknown_field="x")  # type: ignore[call-arg]
        assert not hasattr(s, "unknown_field")


class TestYamlLoading:
    """Settings should load values from a YAML config file."""

    def test_load_from_custom_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text(
            "pool:\n"
            "  endpoints:\n"
            "    - https://first.test\n"
            "    - https://second.test/\n"
            "  probe_timeout: 0.75\n"
            "fetch:\n"
            "  region: GB\n"
        )
        s = Settings.load(config_path=yaml_file)
        assert s.pool.endpoints == ["https://first.test", "https://second.test"]
        assert s.pool.probe_timeout == 0.75
        assert s.fetch.region == "GB"

    def test_missing_yaml_uses_defaults(self, tmp_path: Path) -> None:
        s = Settings.load(config_path=tmp_path / "nonexistent.yaml")
        assert s.pool.endpoints == DEFAULT_ENDPOINTS

    def test_env_overrides_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text("fetch:\n  listing_timeout: 4\n")
        monkeypatch.setenv("MIRRORTUBE_FETCH__LISTING_TIMEOUT", "6")
        s = Settings.load(config_path=yaml_file)
        assert s.fetch.listing_timeout == 6.0

    def test_empty_endpoint_list_in_yaml_rejected(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "custom.yaml"
        yaml_file.write_text("pool:\n  endpoints: []\n")
        with pytest.raises(ValidationError):
            Settings.load(config_path=yaml_file)


class TestFormatValidationError:
    """format_validation_error renders one line per error."""

    def test_format(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            PoolSettings(endpoints=[], probe_timeout=-1)
        message = format_validation_error(exc_info.value)
        assert message.startswith("Configuration error:")
        assert "endpoints" in message
        assert "probe_timeout" in message


class TestDotenvLoading:
    """Settings should pick up a .env file in the working directory."""

    def test_dotenv_nested_value(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("MIRRORTUBE_POOL__PROBE_ON_STARTUP=false\n")
        s = Settings()
        assert s.pool.probe_on_startup is False

    def test_env_beats_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text("MIRRORTUBE_FETCH__REGION=DE\n")
        monkeypatch.setenv("MIRRORTUBE_FETCH__REGION", "FR")
        assert Settings().fetch.region == "FR"
