from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_SQLITE_PATH = BASE_DIR / "gym_admin.db"
DEFAULT_SQLITE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BASE_DIR / ".env", env_prefix="GYM_", case_sensitive=False)

    database_url: str = Field(default=DEFAULT_SQLITE_URL, description="SQLAlchemy database URL")
    # Comma-separated origins or '*' for all
    cors_origins: str = Field(default="*")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Caller classification; the identity provider in front of the API hands these out
    admin_token: str = Field(default="dev-admin-token", description="Bearer token for administrators")
    member_token: str = Field(default="dev-member-token", description="Bearer token for members (with X-Member-Id)")
    webhook_secret: Optional[str] = Field(default=None, description="Shared secret for the payment webhook")

    # Civil dates are taken in this zone, then stored naive
    timezone: str = Field(default="Asia/Seoul")

    # Engine constants
    locker_pool_size: int = Field(default=200, ge=1)
    expiring_threshold_days: int = Field(default=7, ge=0)
    pt_validity_days: int = Field(default=180, ge=1, description="Nominal window for session-count plans")
    degenerate_default_days: int = Field(default=365, ge=1, description="Fallback when repairing unknown plans")
    plan_catalog_path: Optional[str] = Field(default=None, description="JSON file overriding the plan catalog")

    @property
    def cors_origins_list(self) -> List[str]:
        s = (self.cors_origins or "").strip()
        if not s or s == "*":
            return ["*"]
        return [part.strip() for part in s.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
