"""Configuration with layered resolution: defaults -> YAML -> .env -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``MIRRORTUBE_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields, e.g.
``MIRRORTUBE_FETCH__STREAM_TIMEOUT=20``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

# Public Piped API mirrors, most reliable first
DEFAULT_ENDPOINTS: list[str] = [
    "https://pipedapi.kavin.rocks",
    "https://api.piped.privacy.com.de",
    "https://pipedapi.drgns.space",
    "https://api.piped.chalos.xyz",
    "https://pipedapi.tokhmi.xyz",
    "https://api.piped.projectsegfau.lt",
    "https://pipedapi.adminforge.de",
    "https://piped-api.lunar.icu",
]


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class PoolSettings(BaseModel):
    """Mirror pool and startup probe configuration."""

    endpoints: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ENDPOINTS),
        min_length=1,
        description="Ordered mirror base URLs; the first is preferred initially.",
    )
    probe_path: str = "/trending?region=US"
    probe_timeout: float = Field(
        default=1.5, gt=0.0, description="Per-mirror probe deadline in seconds."
    )
    probe_on_startup: bool = True

    @field_validator("endpoints")
    @classmethod
    def _strip_trailing_slashes(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip().rstrip("/") for item in value]
        if any(not item for item in cleaned):
            msg = "endpoint URLs must not be blank"
            raise ValueError(msg)
        return cleaned


class FetchSettings(BaseModel):
    """Failover fetch configuration."""

    listing_timeout: float = Field(
        default=10.0, gt=0.0, description="Per-attempt timeout for listings."
    )
    stream_timeout: float = Field(
        default=15.0, gt=0.0, description="Per-attempt timeout for stream lookups."
    )
    attempts_per_endpoint: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Tries against one mirror before moving to the next.",
    )
    region: str = Field(default="US", min_length=2, max_length=2)
    user_agent: str = "mirrortube/0.1"


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (layered resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``mirrortube.yaml`` or ``--config`` path)
        3. ``.env`` file in the working directory
        4. Environment variables (prefixed ``MIRRORTUBE_``)
        5. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="MIRRORTUBE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="mirrortube.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    pool: PoolSettings = Field(default_factory=PoolSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "mirrortube.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
