"""Relay configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import AliasChoices, AnyUrl, Field, PositiveFloat
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/ws-http-relay/relay.yaml"),
    Path("/etc/ws-http-relay/relay.yml"),
    Path("./config/relay.yaml"),
    Path("./config/relay.yml"),
)


class RelaySettings(BaseSettings):
    """Validated settings for the relay process."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Channel endpoints
    gateway_url: AnyUrl = Field(
        default="ws://127.0.0.1:8080",
        validation_alias=AliasChoices("gateway_url", "RELAY_GATEWAY_URL", "IC_WS_GATEWAY_URL"),
        description="WebSocket gateway the relay connects to.",
    )
    network_url: AnyUrl = Field(
        default="http://127.0.0.1:4943",
        validation_alias=AliasChoices("network_url", "RELAY_NETWORK_URL", "IC_NETWORK_URL"),
        description="Network URL of the remote platform, forwarded to the gateway on connect.",
    )
    endpoint_id: str | None = Field(
        default=None,
        description="Identifier of the remote endpoint this relay serves.",
    )
    transport: Literal["dummy", "websocket"] = Field(
        default="websocket",
        description="Channel transport implementation to use.",
    )

    # Reconnect policy
    reconnect_after_seconds: float = Field(
        default=45.0,
        ge=0,
        validation_alias=AliasChoices(
            "reconnect_after_seconds", "RELAY_RECONNECT_AFTER_SECONDS", "RECONNECT_AFTER_SECONDS"
        ),
        description="Delay before reopening after the remote application closed the channel.",
    )

    # Outbound HTTP
    http_timeout_seconds: PositiveFloat | None = Field(
        default=None,
        description="Optional timeout for outbound HTTP calls; None waits for the call to settle.",
    )
    http_verify_tls: bool = Field(
        default=True,
        description="Verify TLS certificates of outbound HTTP targets.",
    )
    shutdown_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        description="How long shutdown waits for in-flight requests to settle.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the relay process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("endpoint_id", mode="before")
    @classmethod
    def _blank_endpoint_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[RelaySettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._file_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _file_settings_source(settings_cls: type[RelaySettings] | None = None) -> Dict[str, Any]:
        for path in RelaySettings._resolve_candidate_paths():
            data = RelaySettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("RELAY_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read relay config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid relay config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Relay config file {path} must contain a mapping at top level.")
        return raw

    def describe(self) -> str:
        """One-line rendering of the effective configuration for startup logs."""

        return (
            f"gateway_url={self.gateway_url}, network_url={self.network_url}, "
            f"endpoint_id={self.endpoint_id}, reconnect_after_seconds={self.reconnect_after_seconds}, "
            f"transport={self.transport}"
        )


@lru_cache()
def get_settings() -> RelaySettings:
    """Return memoized relay settings."""

    return RelaySettings()
