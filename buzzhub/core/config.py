"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 4000

    # Storage
    # "memory" keeps everything in-process (development/tests), "sql" uses SQLAlchemy
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./buzzhub.db"
    database_echo: bool = False

    # Delivery
    # Events buffered per bus subscriber before new ones are dropped
    delivery_queue_size: int = Field(default=256, ge=1)
    # Upper bound on a single handler invocation
    delivery_handler_timeout_seconds: float = Field(default=5.0, gt=0)
    # Events buffered per client connection
    channel_queue_size: int = Field(default=100, ge=1)

    # Identity (populated by the upstream auth proxy)
    auth_user_header: str = "x-user-id"

    # CORS
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "https://buzzhub-by-shalini.netlify.app",
            "http://localhost:3000",
        ]
    )

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
