"""
Configuration for the account ledger service.

Values come from environment variables prefixed with ``LEDGER_`` or from a
``.env`` file in the working directory.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Path = Field(
        default=BASE_DIR / "data/ledger.db",
        description="SQLite database file",
    )
    company_name: str = Field(
        default="Company",
        description="Name of the company party; the default value disables company-party rules",
    )
    high_value_threshold: float = Field(
        default=100000.0,
        ge=0,
        description="Posted amounts at or above this value produce a warning",
    )
    cors_origins: str = Field(
        default="http://localhost:8080",
        description="Comma-separated list of allowed browser origins",
    )
    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="json",
        description="json or console",
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"json", "console"}:
            raise ValueError("log_format must be json or console")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return Settings()
