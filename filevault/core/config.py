# filevault/core/config.py
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_UPLOAD_BYTES = 100 * 1024 * 1024
DEFAULT_SECRET_KEY = "change-me-in-production"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./filevault.db"

    # Signing secret for bearer tokens. Override in every real deployment.
    secret_key: str = DEFAULT_SECRET_KEY
    token_ttl_seconds: int = 24 * 60 * 60
    otp_ttl_seconds: int = 10 * 60

    password_hash_method: str = "scrypt"
    min_password_length: int = 6

    max_upload_bytes: int = MAX_UPLOAD_BYTES

    # "local" keeps blobs under storage_dir, "s3" puts them in aws_s3_bucket_name
    storage_backend: str = "local"
    storage_dir: Path = Path("storage")

    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"
    aws_s3_bucket_name: str | None = None
    aws_s3_prefix: str = ""

    # No smtp_host means OTP codes only go to the log
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_sender: str = "no-reply@filevault.local"
    smtp_use_tls: bool = True

    cors_origins: list[str] = ["*"]
    api_prefix: str = ""
    log_level: str = "INFO"

    # Tell pydantic-settings to load from .env at project root
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore any extra stuff in .env
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
