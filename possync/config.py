"""
Configuration management using Pydantic settings.
Loads environment variables for the database, the Clover API and the sync engine.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Application Configuration
    app_environment: str = "development"
    log_level: str = "INFO"

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./possync.sqlite"  # postgresql+asyncpg://... in deployment
    database_echo: bool = False

    # Clover API Configuration
    clover_environment: str = "sandbox"  # sandbox | production
    clover_base_url: str = ""  # Explicit override; wins over clover_environment
    clover_token_encryption_key: str = ""  # 44-char Fernet key; empty = tokens stored as plaintext

    # Sync Configuration
    clover_sync_enabled: bool = False  # Deployment kill-switch, passed explicitly into sync entry points
    clover_page_size: int = 100
    clover_request_timeout_seconds: float = 30.0
    clover_max_retry_attempts: int = 4
    clover_retry_initial_delay_seconds: float = 0.3
    clover_retry_max_delay_seconds: float = 5.0
    clover_pagination_delay_seconds: float = 0.15

    # Worker Configuration
    clover_sync_interval_seconds: int = 300
    clover_orders_prune: bool = False

    # Inventory defaults for rows created by sync
    default_reorder_level: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
