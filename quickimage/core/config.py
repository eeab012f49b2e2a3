from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "QuickImage"
    ENV: str = "local"  # or production
    LOG_LEVEL: str = "INFO"

    # Storage
    IMAGE_FOLDER: Path = Field(default=Path("images"))

    # Provider credentials (absence is checked before any network call)
    OPENAI_API_KEY: Optional[str] = None
    STABILITY_API_KEY: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("STABILITY_API_KEY", "STABILITY_KEY")
    )

    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    STABILITY_BASE_URL: str = "https://api.stability.ai/v2beta"
    HTTP_TIMEOUT: float = 120.0  # seconds

    # Image-to-video polling
    VIDEO_POLL_INTERVAL: float = 0.25  # seconds
    VIDEO_POLL_MAX_ATTEMPTS: Optional[int] = 2400  # None polls forever

    # Caller defaults
    SEARCH_MAX_RESULTS: int = 100
    LIST_MAX_RESULTS: int = 50

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def json_logs(self) -> bool:
        return self.ENV == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
