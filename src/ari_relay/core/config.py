"""
Configuration settings for the ARI relay.

Values are loaded from environment variables and, for local development,
from a .env file. VOIP_* settings describe the ARI event WebSocket and
BROKER_* settings describe the NATS message bus.
"""
from typing import Literal, Optional, get_args

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LOG_LEVELS = get_args(LogLevel)


class Settings(BaseSettings):
    """
    ARI relay configuration loaded from environment variables.

    Connection endpoints and credentials have no defaults and must be set
    explicitly; tuning values default to sensible local-development values.
    """
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Event source (ARI WebSocket) ---
    voip_scheme: str = "ws"
    voip_host: str
    voip_port: int = 8088
    voip_path: str = "/ari/events"
    voip_user: str
    voip_pass: str
    voip_app: str
    voip_open_timeout: float = 10.0  # seconds
    voip_ping_interval: float = 20.0  # seconds
    voip_max_reconnect_attempts: int = 0  # 0 = never, -1 = infinite
    voip_reconnect_base_delay: float = 1.0
    voip_reconnect_max_delay: float = 60.0

    # --- Message bus ---
    bus_adapter: Literal["nats", "memory"] = "nats"
    broker_scheme: str = "nats"
    broker_host: str
    broker_port: int = 4222
    broker_path: str = ""
    broker_user: str = ""
    broker_pass: str = ""
    broker_client_id: str = "ARI-Handler"
    broker_subject_prefix: str = ""
    broker_reconnect_time_wait: int = 2  # seconds
    broker_max_reconnect_attempts: int = -1  # -1 = infinite

    # --- Topic routing ---
    topic_mode: Literal["fixed", "derived"] = "fixed"
    publish_topic: str = "ari.events"
    topic_identifier_field: str = "asterisk_id"

    # --- Relay tuning ---
    queue_size: int = 1000
    publish_max_retries: int = 3
    publish_retry_base_delay: float = 0.5
    publish_retry_max_delay: float = 10.0
    close_timeout: float = 5.0
    drain_timeout: float = 10.0

    # --- Logging ---
    debug: bool = False
    log_level: LogLevel = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def effective_log_level(self) -> str:
        """Log level to configure, DEBUG wins over LOG_LEVEL."""
        return "DEBUG" if self.debug else self.log_level


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """
    Load settings from the environment (and optional .env file).

    Args:
        env_file: Path of the .env file to read, or None to skip it

    Returns:
        Validated Settings

    Raises:
        ConfigError: If required values are missing or values are invalid
    """
    try:
        return Settings(_env_file=env_file)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from e
