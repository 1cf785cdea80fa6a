# homeledger/config.py
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import declarative_base

INSECURE_JWT_SECRET = "dev-secret-please-change"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///./homeledger_dev.db"

    # --- Runtime ---
    app_env: str = "development"
    app_base_url: str = "http://localhost:3000"

    # --- Security / JWT ---
    jwt_secret: str = INSECURE_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours
    impersonation_token_expire_minutes: int = 60

    # --- CORS ---
    cors_origins: List[str] = ["http://localhost:3000"]

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Email ---
    email_backend: str = "local"
    email_output_dir: str = "uploads/emails"
    email_from_address: Optional[str] = None
    email_from_name: str = "HomeLedger"
    email_reply_to: Optional[str] = None
    email_host: Optional[str] = None
    email_port: Optional[int] = 587
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True
    sendgrid_api_key: Optional[str] = None

    # --- Object storage ---
    s3_bucket: Optional[str] = None
    aws_region: Optional[str] = None
    public_s3_url_prefix: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    presign_expires_seconds: int = 300

    # --- Workflow ---
    invitation_expiry_days: int = 7
    transfer_expiry_days: int = 7
    conversation_poll_seconds: int = 10

    # --- Rate limits ---
    invite_rate_limit: int = 20
    invite_rate_window_seconds: int = 60
    login_rate_limit: int = 10
    login_rate_window_seconds: int = 60

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


Base = declarative_base()
