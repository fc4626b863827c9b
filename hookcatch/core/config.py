"""
Application configuration loaded from environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """hookcatch server configuration."""

    model_config = SettingsConfigDict(env_prefix="HOOKCATCH_", env_file=".env", extra="ignore")

    # Store
    db_path: str = "./webhooks.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    max_body_bytes: int = 50 * 1024 * 1024  # 50MB

    # Logging
    log_level: str = "info"
    log_format: Literal["json", "text"] = "text"

    # Live feed
    listener_queue_size: int = 100
    heartbeat_interval: int = 15  # seconds

    # Query defaults
    default_page_size: int = 25
    max_page_size: int = 1000
    default_retention_days: int = 7

    # Public tunnel lookup (local ngrok agent API)
    ngrok_api_url: str = "http://127.0.0.1:4040/api/tunnels"

    # CORS
    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
