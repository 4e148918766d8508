"""
Configuration and settings for the birthday service.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Sessions / admin sign-in (Google OAuth)
    session_secret: Optional[str] = Field(default=None)
    google_client_id: Optional[str] = Field(default=None)
    google_client_secret: Optional[str] = Field(default=None)
    google_oauth_callback_url: str = Field(
        default="http://localhost:3001/auth/google/callback"
    )
    post_auth_redirect: str = Field(default="/admin-preview")
    # The only identity allowed into the admin pages.
    admin_email: Optional[str] = Field(default=None)

    # Google Calendar (service account)
    google_calendar_id: Optional[str] = Field(default=None)
    google_calendar_key_base64: Optional[str] = Field(default=None)
    google_calendar_key_path: Optional[str] = Field(default=None)

    # Firestore
    firebase_key_base64: Optional[str] = Field(default=None)
    firebase_key_path: Optional[str] = Field(default=None)
    birthdays_collection: str = Field(default="birthdays")

    # SQL store (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # HTTP
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    log_level: str = Field(default="INFO")

    @property
    def calendar_id(self) -> Optional[str]:
        # The admin's own calendar unless another one is configured.
        return self.google_calendar_id or self.admin_email

    def firebase_credentials(self) -> Optional[dict]:
        return load_service_account_info(
            self.firebase_key_base64, self.firebase_key_path
        )

    def calendar_credentials(self) -> Optional[dict]:
        return load_service_account_info(
            self.google_calendar_key_base64, self.google_calendar_key_path
        )


def load_service_account_info(
    encoded: Optional[str], path: Optional[str]
) -> Optional[dict]:
    """
    Decode a service-account key given either base64-encoded or as a file path.

    The base64 form wins so hosted deployments can keep keys out of the image.
    """
    if encoded:
        try:
            return json.loads(base64.b64decode(encoded).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValueError("Service account key is not valid base64 JSON") from exc
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    if path:
        logger.warning("Service account key file %s does not exist", path)
    return None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
