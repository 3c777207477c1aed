import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

from vps_monitor.errors import StartupConfigError

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise StartupConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise StartupConfigError(f"{name} must be an integer, got {raw!r}") from exc


class Settings(BaseModel):
    # Telegram
    bot_token: Optional[str] = Field(
        default=None,
        description="Telegram bot token (env BOT_TOKEN)",
    )
    admin_chat_id: Optional[str] = Field(
        default=None,
        description="Chat id that receives alerts and digests (env ADMIN_CHAT_ID)",
    )
    telegram_api_url: str = Field(
        default="https://api.telegram.org",
        description="Base URL of the Telegram Bot API",
    )
    admin_only: bool = Field(
        default=True,
        description="Ignore commands from chats other than ADMIN_CHAT_ID",
    )

    # Alerting
    alert_cpu: float = Field(default=80.0, ge=0, le=100)
    alert_memory: float = Field(default=85.0, ge=0, le=100)
    alert_disk: float = Field(default=90.0, ge=0, le=100)
    alert_dead_band: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Percent a breached metric must fall below its threshold before it clears",
    )

    # Scheduling / collection
    monitor_interval_seconds: float = Field(default=60.0, gt=0)
    digest_every_minutes: int = Field(default=5, ge=1, le=60)
    command_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for every shell sub-query",
    )
    network_interface_pattern: str = Field(
        default=r"eth0|ens|enp",
        description="Regex selecting the interface read from /proc/net/dev",
    )

    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls) -> "Settings":
        admin_only = os.getenv("ADMIN_ONLY", "true").strip().lower() in _TRUE_VALUES

        return cls(
            bot_token=os.getenv("BOT_TOKEN") or None,
            admin_chat_id=os.getenv("ADMIN_CHAT_ID") or None,
            telegram_api_url=os.getenv("TELEGRAM_API_URL", "https://api.telegram.org"),
            admin_only=admin_only,
            alert_cpu=_env_float("ALERT_CPU", 80.0),
            alert_memory=_env_float("ALERT_MEMORY", 85.0),
            alert_disk=_env_float("ALERT_DISK", 90.0),
            alert_dead_band=_env_float("ALERT_DEAD_BAND", 0.0),
            monitor_interval_seconds=_env_float("MONITOR_INTERVAL_SECONDS", 60.0),
            digest_every_minutes=_env_int("DIGEST_EVERY_MINUTES", 5),
            command_timeout_seconds=_env_float("COMMAND_TIMEOUT_SECONDS", 5.0),
            network_interface_pattern=os.getenv("NETWORK_INTERFACE_PATTERN", r"eth0|ens|enp"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def require_bot_credentials(self) -> None:
        """Raise StartupConfigError unless both bot credentials are set."""
        if not self.bot_token:
            raise StartupConfigError("BOT_TOKEN is not set in environment variables.")
        if not self.admin_chat_id:
            raise StartupConfigError("ADMIN_CHAT_ID is not set in environment variables.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
