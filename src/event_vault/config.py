"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
_DEVELOPMENT_ENVIRONMENTS = {"local", "development"}
GIB = 1024**3


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    environment: str = _ENVIRONMENT

    r2_account_id: str | None = None
    r2_access_key_id: str | None = None
    r2_secret_access_key: str | None = None
    r2_bucket_name: str | None = None
    r2_public_url: str | None = None
    # 80% of the 10 GiB free tier.
    r2_capacity_bytes: int = 8 * GIB

    google_drive_client_id: str | None = None
    google_drive_client_secret: str | None = None
    google_drive_refresh_token: str | None = None
    google_drive_folder_id: str | None = None
    google_drive_capacity_bytes: int = 12 * GIB

    local_storage_path: str = "./event-vault-data"

    quota_safety_margin: float = 0.05
    default_compression_quality: float = 0.90
    premium_compression_quality: float = 0.95
    backend_timeout_seconds: float = 30.0
    backend_max_attempts: int = 3
    backup_concurrency: int = 3
    backup_failure_threshold: float = 0.10
    status_cache_size: int = 256
    local_retention_days: int = 30

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def r2_configured(self) -> bool:
        return all(
            (
                self.r2_account_id,
                self.r2_access_key_id,
                self.r2_secret_access_key,
                self.r2_bucket_name,
            )
        )

    @property
    def google_drive_configured(self) -> bool:
        return all(
            (
                self.google_drive_client_id,
                self.google_drive_client_secret,
                self.google_drive_refresh_token,
                self.google_drive_folder_id,
            )
        )


def is_development(settings: Settings) -> bool:
    """Return true when error responses may include exception details."""
    return settings.environment in _DEVELOPMENT_ENVIRONMENTS

