"""
DM Configuration

Settings for the Deployment Manager synchronization service
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """DM Settings"""

    # Service
    service_name: str = "dmsync"

    # Redis
    redis_url: str = "redis://localhost:6379"

    # Messaging
    routing_key_prefix: str = "dmsync"
    inbox_max_size: int = Field(default=0, ge=0)  # 0 = unbounded

    # Liveness
    heartbeat_period: float = Field(default=60.0, gt=0)  # seconds
    heartbeat_threshold: float = Field(default=3.0, gt=0)  # missed periods
    liveness_sweep_interval: float = Field(default=30.0, gt=0)  # seconds

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_prefix="DMSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
