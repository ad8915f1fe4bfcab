# stepflow/config.py
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_id: Optional[str] = None
    environment: str = "development"

    api_base_url: str = "https://api.stepflow.dev"
    event_api_base_url: str = "https://events.stepflow.dev"
    event_key: Optional[str] = None
    signing_key: Optional[str] = None
    signing_key_fallback: Optional[str] = None

    request_timeout: float = Field(default=30.0, gt=0)
    # Seconds without progress before a requested step is reported missing.
    step_not_found_timeout: float = Field(default=10.0, gt=0)

    log_level: str = "INFO"
    log_format: str = "console"

    model_config = SettingsConfigDict(
        env_prefix="STEPFLOW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development", "local")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
