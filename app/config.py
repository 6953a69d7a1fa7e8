from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from a .env file if present (local dev only)
load_dotenv()


class Settings(BaseSettings):
    """Application configuration loaded from environment variables or .env file.

    Instances are treated as read-only once the app has started; the app
    factory stores one on ``app.state`` and passes it to every service.
    """

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, frozen=True, extra="ignore", populate_by_name=True
    )

    # General
    service_name: str = Field("looksy-backend", alias="SERVICE_NAME")
    app_env: Literal["development", "production"] = Field("development", alias="APP_ENV")
    port: int = Field(3000, alias="PORT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Caller allow-list, comma separated
    chrome_extension_ids: str = Field("", alias="CHROME_EXTENSION_IDS")

    # Gemini
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field("gemini-2.5-flash-image", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        "https://generativelanguage.googleapis.com/v1beta", alias="GEMINI_BASE_URL"
    )
    gemini_timeout_seconds: float = Field(30.0, alias="GEMINI_TIMEOUT_SECONDS")
    gemini_max_attempts: int = Field(3, ge=1, alias="GEMINI_MAX_ATTEMPTS")
    gemini_retry_base_delay: float = Field(1.0, ge=0, alias="GEMINI_RETRY_BASE_DELAY")

    # Remote overlay fetches
    overlay_fetch_timeout_seconds: float = Field(15.0, alias="OVERLAY_FETCH_TIMEOUT_SECONDS")

    # Studio image storage
    uploads_dir: Path = Field(Path("uploads"), alias="UPLOADS_DIR")
    studio_ttl_seconds: int = Field(86400, alias="STUDIO_TTL_SECONDS", description="Lifetime of a stored studio image.")
    studio_jpeg_quality: int = Field(90, alias="STUDIO_JPEG_QUALITY", description="JPEG quality for stored studio images (1-100).")

    @property
    def allowed_extension_ids(self) -> frozenset[str]:
        return frozenset(part.strip() for part in self.chrome_extension_ids.split(",") if part.strip())

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:  # pragma: no cover
    """Return a cached Settings instance so it is only parsed once."""

    return Settings()
