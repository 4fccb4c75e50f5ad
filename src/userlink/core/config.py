"""userlink configuration: Pydantic model, load, and save."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from userlink.core.constants import (
    CONFIG_FILENAME,
    DEFAULT_URL,
    OPEN_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
    RECONNECT_BASE_DELAY_SECONDS,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY_SECONDS,
    SIMULATED_AUTH_LATENCY_SECONDS,
    SIMULATED_CONNECT_LATENCY_SECONDS,
    SIMULATED_PASSWORD,
    SIMULATED_ROLE,
    SIMULATED_USERNAME,
    USERLINK_DIR_NAME,
)
from userlink.core.exceptions import ConfigError, ConfigNotFoundError


def userlink_dir() -> Path:
    """Return the userlink config directory (~/.userlink)."""
    return Path.home() / USERLINK_DIR_NAME


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class TransportConfig(BaseModel):
    url: str = DEFAULT_URL
    probe_timeout_seconds: float = Field(default=PROBE_TIMEOUT_SECONDS, gt=0)
    open_timeout_seconds: float = Field(default=OPEN_TIMEOUT_SECONDS, gt=0)
    # Fall back to the simulated transport when the probe fails
    simulated_fallback: bool = True

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("ws", "wss") or not parsed.netloc:
            raise ValueError(
                f"Invalid endpoint URL {v!r}. Expected ws://<host>:<port>/<path> or wss://..."
            )
        return v


class ReconnectConfig(BaseModel):
    base_delay_seconds: float = Field(default=RECONNECT_BASE_DELAY_SECONDS, gt=0)
    max_delay_seconds: float = Field(default=RECONNECT_MAX_DELAY_SECONDS, gt=0)
    max_attempts: int = Field(default=RECONNECT_MAX_ATTEMPTS, ge=0)

    @model_validator(mode="after")
    def cap_not_below_base(self) -> ReconnectConfig:
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("reconnect.max_delay_seconds must be >= base_delay_seconds")
        return self

    def delay_for(self, attempt: int) -> float:
        """Backoff delay before reconnection attempt number *attempt* (0-based)."""
        return min(self.base_delay_seconds * (2**attempt), self.max_delay_seconds)


class SimulatedConfig(BaseModel):
    connect_latency_seconds: float = Field(default=SIMULATED_CONNECT_LATENCY_SECONDS, ge=0)
    auth_latency_seconds: float = Field(default=SIMULATED_AUTH_LATENCY_SECONDS, ge=0)
    username: str = SIMULATED_USERNAME
    password: SecretStr = SecretStr(SIMULATED_PASSWORD)
    role: str = SIMULATED_ROLE
    push_user_list: bool = False


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class UserlinkConfig(BaseModel):
    """Root userlink configuration model."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    simulated: SimulatedConfig = Field(default_factory=SimulatedConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def config_file_path() -> Path:
    if env_path := os.environ.get("USERLINK_CONFIG"):
        return Path(env_path)
    return userlink_dir() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> UserlinkConfig:
    """
    Load UserlinkConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (USERLINK_*)
      2. Config file (~/.userlink/config.toml)
      3. Built-in defaults

    The default config file is optional. A path passed explicitly must exist.
    """
    import tomllib

    cfg_path = path or config_file_path()
    data: dict[str, Any] = {}

    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif path is not None:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data)

    try:
        return UserlinkConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid configuration in {cfg_path}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any]) -> None:
    if url := os.environ.get("USERLINK_URL"):
        data.setdefault("transport", {})["url"] = url
    if timeout := os.environ.get("USERLINK_PROBE_TIMEOUT"):
        data.setdefault("transport", {})["probe_timeout_seconds"] = timeout
    if fallback := os.environ.get("USERLINK_SIMULATED_FALLBACK"):
        data.setdefault("transport", {})["simulated_fallback"] = fallback.lower() in (
            "1",
            "true",
            "yes",
            "on",
        )
    if level := os.environ.get("USERLINK_LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level
    if fmt := os.environ.get("USERLINK_LOG_FORMAT"):
        data.setdefault("logging", {})["format"] = fmt


def config_to_dict(config: UserlinkConfig, reveal_secrets: bool = False) -> dict[str, Any]:
    """Dump *config* to plain TOML/JSON-safe data."""
    data = config.model_dump(mode="json")
    if reveal_secrets:
        data["simulated"]["password"] = config.simulated.password.get_secret_value()
    return data


def save_config(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Write config dict to TOML file with secure permissions (0600)."""
    import tomli_w

    cfg_path = path or config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    # Write atomically
    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(config_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
