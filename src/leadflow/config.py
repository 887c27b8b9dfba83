from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    apollo_api_key: Optional[str] = None
    instantly_api_key: Optional[str] = None

    # Session state (pipeline resume)
    state_dir: str = "data/state"
    state_ttl_seconds: int = 3600

    http_timeout: float = 30.0

    log_level: str = "INFO"
    log_file: str = "logs/leadflow.log"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
