from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings managed via Pydantic Settings.
    Reads TIDYROOM_* variables from the environment and a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="TIDYROOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # --- Application Meta ---
    APP_NAME: str = "tidyroom"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" or "plain"

    # --- History ---
    MAX_HISTORY: int = Field(50, description="Maximum number of history entries kept in memory")

    # --- Pagination ---
    DEFAULT_PAGE_SIZE: int = 100
    MAX_PAGE_SIZE: int = 10000

    # --- Import ---
    CSV_INFER_SCHEMA_LENGTH: int = 10000

    # --- Server ---
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @field_validator("MAX_HISTORY", "DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "plain"):
            raise ValueError("LOG_FORMAT must be 'json' or 'plain'")
        return v


settings = Settings()
