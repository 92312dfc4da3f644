"""Configuration management for the service watchdog."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from service_checks.errors import ConfigurationError


DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


class ServicesConfig(BaseModel):
    """Which services are watched and which may be restarted."""
    model_config = ConfigDict(frozen=True)

    monitored: list[str] = Field(default_factory=list, description="Service names to observe")
    restart: list[str] = Field(default_factory=list, description="Service names eligible for auto-restart")


class RestartConfig(BaseModel):
    """Escalation limits for auto-restart."""
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Restart attempts before giving up")
    reset_window_minutes: float = Field(default=60.0, gt=0, description="Age after which a failure record is discarded")
    wait_seconds: float = Field(default=30.0, ge=0, description="Grace period between restart and re-check")

    @property
    def reset_window_seconds(self) -> float:
        return float(self.reset_window_minutes) * 60.0


class HostsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    exclude_patterns: list[str] = Field(default_factory=list, description="Hostname regexes that skip the run")


class DiskConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    paths: list[str] = Field(default_factory=lambda: ["/"], description="Mount points to check")
    min_free_percent: Optional[float] = Field(default=10.0, ge=0, le=100, description="Alert below this free percentage")
    min_free_gb: Optional[float] = Field(default=None, ge=0, description="Alert below this many free GiB")


class NotificationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["webhook", "telegram", "log"] = Field(default="webhook", description="Notification transport")
    webhook_url: Optional[str] = Field(default=None, description="Chat webhook endpoint")
    payload_key: str = Field(default="text", description="JSON key carrying the message text")
    timeout_seconds: float = Field(default=15.0, gt=0, description="HTTP timeout for one delivery")
    telegram_bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    telegram_chat_id: Optional[str] = Field(default=None, description="Telegram chat id")


class MonitorConfig(BaseModel):
    """Main configuration for one watchdog invocation."""
    model_config = ConfigDict(frozen=True)

    hostname: Optional[str] = Field(default=None, description="Override for socket.gethostname()")
    test_mode: bool = Field(default=False, description="Alert when everything is healthy instead of when it is not")
    state_dir: str = Field(default="/var/lib/service-checks", description="Directory holding failure records")
    log_file: Optional[str] = Field(default=None, description="Optional log file in addition to stderr")
    backend: Literal["systemd", "docker"] = Field(default="systemd", description="How services are queried and restarted")
    docker_socket_path: str = Field(default="/var/run/docker.sock", description="Docker Engine API socket")

    services: ServicesConfig = Field(default_factory=ServicesConfig)
    restart: RestartConfig = Field(default_factory=RestartConfig)
    hosts: HostsConfig = Field(default_factory=HostsConfig)
    disk: DiskConfig = Field(default_factory=DiskConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)


def _env_bool(raw: str) -> bool:
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def _apply_env_overrides(config_data: dict[str, Any]) -> dict[str, Any]:
    data = dict(config_data)

    top_level = {
        "hostname": os.getenv("SERVICE_CHECKS_HOSTNAME"),
        "state_dir": os.getenv("SERVICE_CHECKS_STATE_DIR"),
        "log_file": os.getenv("SERVICE_CHECKS_LOG_FILE"),
        "backend": os.getenv("SERVICE_CHECKS_BACKEND"),
        "test_mode": os.getenv("SERVICE_CHECKS_TEST_MODE"),
    }
    for key, value in top_level.items():
        if value is None or not str(value).strip():
            continue
        data[key] = _env_bool(value) if key == "test_mode" else str(value).strip()

    notifications = data.get("notifications")
    notifications = dict(notifications) if isinstance(notifications, dict) else {}
    notify_env = {
        "webhook_url": os.getenv("SERVICE_CHECKS_WEBHOOK_URL"),
        "telegram_bot_token": os.getenv("TELEGRAM_BOT_TOKEN"),
        "telegram_chat_id": os.getenv("TELEGRAM_CHAT_ID"),
    }
    for key, value in notify_env.items():
        if value is not None and str(value).strip():
            notifications[key] = str(value).strip()
    data["notifications"] = notifications
    return data


def load_config(config_path: str | Path | None = None, *, apply_env: bool = True) -> MonitorConfig:
    """Load configuration from a YAML file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("SERVICE_CHECKS_CONFIG") or DEFAULT_CONFIG_PATH
    path = Path(config_path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not read config file {path}: {exc}") from exc

    if not isinstance(config_data, dict):
        raise ConfigurationError("Config YAML must be a mapping")

    if apply_env:
        config_data = _apply_env_overrides(config_data)

    try:
        return MonitorConfig(**config_data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config {path}: {exc}") from exc
