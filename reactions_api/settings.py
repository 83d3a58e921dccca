import os
from functools import lru_cache
from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    DB_DSN: str = 'postgresql://postgres@localhost:5432/postgres'
    ROOT_PATH: str = '/' + os.getenv("APP_NAME", "")
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: list[str] = ['*']
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ['*']
    CORS_ALLOW_HEADERS: list[str] = ['*']

    # Storage backend for reactions: "sql" (SQLAlchemy, DB_DSN) or "firestore"
    REACTION_BACKEND: Literal["sql", "firestore"] = "sql"
    FIRESTORE_PROJECT: str | None = os.getenv("GOOGLE_CLOUD_PROJECT")

    REACTION_MAX_ATTEMPTS: int = 5
    REACTION_RETRY_DELAY: float = 0.05  # seconds, multiplied by the attempt number
    STORAGE_TIMEOUT_SECONDS: float = 5.0

    model_config = ConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
