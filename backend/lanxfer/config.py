"""Application configuration using pydantic-settings."""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "LAN Transfer Relay"
    debug: bool = False
    log_level: str = "INFO"

    # Relay listener
    host: str = "0.0.0.0"
    port: int = 3001

    # Transfer protocol
    chunk_size: int = 64 * 1024  # 64KB chunks
    room_code_length: int = 6

    # Client
    reconnect_delay_seconds: float = 1.5
    download_dir: Path = Path("./downloads")

    # Stale session sweeper
    sweep_interval_seconds: int = 60

    # Rate Limiting (plain HTTP only, WebSocket upgrades are exempt)
    rate_limit_requests: int = 300
    rate_limit_window_seconds: int = 60

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]


settings = Settings()
