"""Application settings using Pydantic BaseSettings."""

import os
import re

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_async_database_url() -> str:
    """Get database URL converted for an async driver."""
    url = os.environ.get("DATABASE_URL", settings.database_url)
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
        url = url.rstrip('?&')
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (Postgres in deployments, SQLite for local runs)
    database_url: str = "sqlite+aiosqlite:///./carrier_desk.db"

    # Redis (optional, realtime falls back to in-process fan-out)
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = False

    # JWT
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    password_reset_expire_minutes: int = 30
    password_bcrypt_rounds: int = 12

    # Application
    app_name: str = "Carrier Desk API"
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Contracts
    contract_duration_minutes: int = 10
    contract_expiry_sweep_enabled: bool = True
    contract_expiry_sweep_seconds: int = 30

    # Chat
    chat_history_limit: int = 50
    message_max_length: int = 2000

    # Plan images (Google Cloud Storage)
    gcp_project_id: str = "local-development"
    gcs_plan_images_bucket: str | None = None
    plan_image_max_bytes: int = 2 * 1024 * 1024

    # Profile photos (Google Cloud Storage)
    gcs_profile_photos_bucket: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
