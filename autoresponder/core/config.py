"""Auto-respond bot configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# === Path Configuration ===
PACKAGE_DIR = Path(__file__).parent.parent
PROJECT_DIR = PACKAGE_DIR.parent
DEFAULT_DATA_DIR = PROJECT_DIR / "data"

BOT_NAME = "autoresponder"
BOT_VERSION = "0.3.0"


class AutoRespondSettings(BaseSettings):
    """Bot and media pipeline settings"""

    model_config = SettingsConfigDict(
        env_file=PROJECT_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Discord
    discord_bot_token: str = Field(default="", description="Discord bot token")

    # Storage
    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Root of the durable media namespace")

    # Media fetching
    media_max_bytes: int = Field(default=15 * 1024 * 1024, description="Largest accepted media body")
    media_min_bytes: int = Field(default=64, description="Smallest accepted media body")
    fetch_timeout: float = Field(default=12.0, description="Per-request HTTP timeout in seconds")
    fetch_retries: int = Field(default=2, description="Retries for transient network errors")
    fetch_retry_delay: float = Field(default=0.6, description="Base backoff delay in seconds")
    fetch_backoff_factor: float = Field(default=1.5, description="Backoff multiplier per retry")

    # Memory cache
    media_cache_ttl: float = Field(default=600.0, description="Memory cache entry TTL in seconds")
    media_cache_capacity: int = Field(default=128, description="Memory cache entry limit")

    # Cooldowns
    gif_cooldown: float = Field(default=7.0, description="Window between GIF-like replies per rule")
    error_log_cooldown: float = Field(default=300.0, description="Window between identical failure logs")
    error_log_prune_threshold: int = Field(default=1000, description="Tracked keys before pruning")

    # Health server
    enable_health_server: bool = Field(default=True, description="Run the aiohttp status server")
    health_port: int = Field(default=8080, description="Health server port")

    # Environment
    log_level: str = Field(default="INFO", description="Logging level")
    library_log_level: str = Field(default="WARNING", description="Level for discord.py and HTTP library loggers")

    @field_validator("media_max_bytes", "media_cache_capacity")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must be positive"""
        if v <= 0:
            raise ValueError("value must be greater than zero")
        return v

    @field_validator("log_level", "library_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper


@lru_cache
def get_settings() -> AutoRespondSettings:
    """Get cached settings instance"""
    return AutoRespondSettings()
