# Filename: neodrive/config.py
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Core
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_name: str = "NeoDrive"
    app_version: str = "0.1.0"

    secret_key: str = Field("change-me-in-production", description="Signs local storage credentials")
    database_url: str = "sqlite:///./data/neodrive.db"

    # Object storage
    storage_backend: Literal["local", "s3"] = "local"
    storage_path: Path = Path("./data")
    public_base_url: str = "http://localhost:8000"
    s3_endpoint: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_bucket: str = "neodrive"
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    presigned_url_expire_seconds: int = 60 * 30

    # Sessions
    session_cookie_name: str = "NEO_DRIVE_SESSION_ID"
    session_ttl_seconds: int = 60 * 60 * 24 * 7
    session_sweep_interval_seconds: int = 60 * 60
    cookie_secure: bool = False

    # Billing
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: str = ""
    stripe_pro_price_id: Optional[str] = None
    stripe_premium_price_id: Optional[str] = None
    pro_plan_price: float = 4.99
    premium_plan_price: float = 9.99
    checkout_success_url: str = "http://localhost:5173/dashboard/subscriptions"
    checkout_cancel_url: str = "http://localhost:5173/dashboard/subscriptions"

    cors_allow_origins: str = "http://localhost:5173"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
    cors_allow_headers: str = "*"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="NEODRIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
