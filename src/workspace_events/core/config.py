"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .enums import StoreBackend


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class EventStoreConfig(BaseModel):
    backend: StoreBackend = StoreBackend.MEMORY
    path: str = ""  # JSONL file, required for the jsonl backend


class PublisherConfig(BaseModel):
    timeout_seconds: float | None = None  # Bounds the append and fan-out steps
    track_causality: bool = True


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    metrics_enabled: bool = True
    metrics_port: int = 9090


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level pipeline settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    store: EventStoreConfig = Field(default_factory=EventStoreConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "WORKSPACE_EVENTS_", "env_nested_delimiter": "__"}

    def validate_store(self) -> None:
        """Reject store settings that cannot produce a working backend."""
        from .errors import ConfigError

        if self.store.backend == StoreBackend.JSONL and not self.store.path:
            raise ConfigError(
                "The jsonl event store backend requires store.path "
                "(WORKSPACE_EVENTS_STORE__PATH)."
            )
        timeout = self.publisher.timeout_seconds
        if timeout is not None and timeout <= 0:
            raise ConfigError(
                f"publisher.timeout_seconds must be positive, got {timeout}"
            )


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    settings = Settings(**data)
    settings.validate_store()
    return settings
