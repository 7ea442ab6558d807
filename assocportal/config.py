# assocportal/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DEV_JWT_SECRET = "dev-secret-please-change"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///./data/assocportal.db"

    # --- Identity provider tokens ---
    auth_jwt_secret: str = DEV_JWT_SECRET
    auth_jwt_algorithm: str = "HS256"
    auth_jwt_issuer: Optional[str] = None
    auth_jwt_audience: Optional[str] = None

    # --- CORS ---
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Email ---
    email_backend: str = "local"
    sendgrid_api_key: Optional[str] = None
    email_from_address: Optional[str] = None
    email_from_name: str = "Association Portal"
    email_reply_to: Optional[str] = None
    email_host: Optional[str] = None
    email_port: int = 587
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True
    email_output_dir: str = "data/emails"

    # --- File storage ---
    file_storage_backend: str = "local"
    uploads_dir: str = "uploads"
    uploads_public_prefix: str = "uploads"
    api_base_url: str = "http://localhost:8000"
    upload_url_expiry_seconds: int = 900
    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    # --- Billing ---
    stripe_api_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_pro_trial_days: int = 14
    frontend_url: str = "http://localhost:5173"

    # --- Tenancy ---
    trial_days: int = 30

    # --- Public endpoints ---
    lead_rate_limit: int = 5
    lead_rate_window_seconds: int = 60

    @property
    def uploads_root_path(self) -> Path:
        return Path(self.uploads_dir)

    @property
    def cors_allow_origins(self) -> List[str]:
        origins = {origin.rstrip("/") for origin in self.cors_origins if origin}
        if self.frontend_url:
            origins.add(self.frontend_url.rstrip("/"))
        return sorted(origins)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
