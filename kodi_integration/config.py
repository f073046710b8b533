from pathlib import Path
from typing import Annotated
from zoneinfo import ZoneInfo
import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    An empty host leaves the corresponding backend unconfigured.
    """

    kodi_host: str = ""
    kodi_port: int = 8080
    kodi_scheme: str = "http"
    kodi_user: str = ""
    kodi_password: str = ""
    kodi_event_port: int = 9090

    tvheadend_host: str = ""
    tvheadend_port: int = 9981
    tvheadend_scheme: str = "http"
    tvheadend_user: str = ""
    tvheadend_password: str = ""

    entity_id: str = "media_player.kodi"
    friendly_name: str = "Kodi"

    epg_channels: Annotated[list[int], NoDecode] = []  # Kodi channel numbers, empty = all mapped
    epg_ttl_hours: int = 2
    epg_grid_limit: int = 1000

    poll_interval_sec: float = 5.0
    epg_load_interval_sec: float = 10.0
    progress_interval_sec: float = 1.0
    keepalive_every_ticks: int = 10

    max_connection_tries: int = 4
    probe_backoff_initial_sec: float = 1.0
    probe_backoff_multiplier: float = 2.0
    request_timeout_sec: float = 10.0
    event_server_connect_timeout_sec: float = 5.0

    database_path: str = "./data/kodi_integration.db"
    display_timezone: str = "UTC"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("epg_channels", mode="before")
    @classmethod
    def parse_epg_channels(cls, value):
        """Parse comma-separated channel numbers or list."""
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            return [int(item.strip()) for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            return [int(item) for item in value]
        return []

    @field_validator("kodi_scheme", "tvheadend_scheme")
    @classmethod
    def validate_scheme(cls, value: str, info) -> str:
        """Only plain HTTP(S) endpoints are supported."""
        normalized = value.lower()
        if normalized not in {"http", "https"}:
            raise ValueError(f"{info.field_name} must be http or https")
        return normalized

    @field_validator("kodi_port", "kodi_event_port", "tvheadend_port")
    @classmethod
    def validate_port(cls, value: int, info) -> int:
        """Validate TCP port range."""
        if not 0 < value < 65536:
            raise ValueError(f"{info.field_name} must be between 1 and 65535")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator("epg_ttl_hours", "epg_grid_limit", "keepalive_every_ticks", "max_connection_tries")
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "poll_interval_sec",
        "epg_load_interval_sec",
        "progress_interval_sec",
        "request_timeout_sec",
        "event_server_connect_timeout_sec",
    )
    @classmethod
    def validate_intervals(cls, value: float, info) -> float:
        """Intervals and timeouts must be positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("probe_backoff_initial_sec")
    @classmethod
    def validate_backoff_initial(cls, value: float) -> float:
        """Backoff may be disabled with 0 but never negative."""
        if value < 0:
            raise ValueError("probe_backoff_initial_sec must be >= 0")
        return value

    @field_validator("probe_backoff_multiplier")
    @classmethod
    def validate_backoff_multiplier(cls, value: float) -> float:
        """Ensure the backoff multiplier is at least 1."""
        if value < 1:
            raise ValueError("probe_backoff_multiplier must be >= 1")
        return value

    @field_validator("display_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Validate timezone string"""
        if value == "UTC":
            return value
        try:
            ZoneInfo(value)
            return value
        except (KeyError, ValueError):
            raise ValueError(f"Invalid timezone: {value}. Must be a valid IANA timezone or 'UTC'")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate logging level name."""
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_backend_configuration(self):
        """Validate cross-field configuration."""
        if not self.kodi_host and not self.tvheadend_host:
            logger.warning(
                "Neither KODI_HOST nor TVHEADEND_HOST configured - connect() will fail"
            )
        if self.kodi_password and not self.kodi_user:
            raise ValueError("kodi_password requires kodi_user")
        if self.tvheadend_password and not self.tvheadend_user:
            raise ValueError("tvheadend_password requires tvheadend_user")
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Kodi: %s", f"{self.kodi_host}:{self.kodi_port}" if self.kodi_host else "not configured")
        logger.info("  Kodi Event Server Port: %s", self.kodi_event_port)
        logger.info(
            "  TVHeadend: %s",
            f"{self.tvheadend_host}:{self.tvheadend_port}" if self.tvheadend_host else "not configured",
        )
        logger.info("  Entity: %s", self.entity_id)
        logger.info("  EPG Channels: %s", self.epg_channels or "all mapped")
        logger.info("  EPG TTL: %s hours", self.epg_ttl_hours)
        logger.info(
            "  Timers: poll=%.1fs epg=%.1fs progress=%.1fs",
            self.poll_interval_sec,
            self.epg_load_interval_sec,
            self.progress_interval_sec,
        )
        logger.info("  Max Connection Tries: %s", self.max_connection_tries)
        logger.info("  Database: %s", self.database_path)
        logger.info("  Display Timezone: %s", self.display_timezone)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
