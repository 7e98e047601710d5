from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

# Floor for the reaper period, in seconds.
MIN_EXPIRED_ITEMS_DELETION_INTERVAL = 300


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    # App Settings
    APP_NAME: str = "Expiring Cache Store"
    PROJECT_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: str = "*"  # Comma-separated string or "*"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = False
    RATE_LIMIT_DEFAULT: str = "100/minute"

    # Storage
    CACHE_TYPE: str = "database"  # database, redis, or inmemory
    DATABASE_URL: str = "sqlite+aiosqlite:///./cache.db"
    REDIS_URL: str | None = None
    CACHE_KEY_PREFIX: str = "cache:"
    CACHE_COMMAND_TIMEOUT: float = 30.0  # seconds per backend call

    # Reaper
    REAPER_ENABLED: bool = True
    EXPIRED_ITEMS_DELETION_INTERVAL: float = 1800.0  # seconds

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    @field_validator("CACHE_TYPE")
    @classmethod
    def cache_type_known(cls, value: str) -> str:
        value = value.lower()
        if value not in ("database", "redis", "inmemory"):
            raise ValueError("CACHE_TYPE must be one of: database, redis, inmemory")
        return value

    @field_validator("EXPIRED_ITEMS_DELETION_INTERVAL")
    @classmethod
    def deletion_interval_floor(cls, value: float) -> float:
        if value < MIN_EXPIRED_ITEMS_DELETION_INTERVAL:
            raise ValueError(
                f"EXPIRED_ITEMS_DELETION_INTERVAL must be at least "
                f"{MIN_EXPIRED_ITEMS_DELETION_INTERVAL} seconds"
            )
        return value

    @field_validator("CACHE_COMMAND_TIMEOUT")
    @classmethod
    def command_timeout_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("CACHE_COMMAND_TIMEOUT must be positive")
        return value

    @model_validator(mode="after")
    def redis_url_required(self) -> "Settings":
        # Fail fast on an unusable backend selection
        if self.CACHE_TYPE == "redis" and not self.REDIS_URL:
            raise ValueError("REDIS_URL must be set in .env when CACHE_TYPE=redis.")
        return self

    # Parse ALLOWED_ORIGINS
    @property
    def allowed_origins_list(self) -> List[str]:
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


settings = Settings()
