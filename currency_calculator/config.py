from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Currency Calculator"
    api_prefix: str = "/v1"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./currency_calculator.db"
    cache_backend: Literal["sqlite", "redis"] = "sqlite"
    redis_url: str | None = None

    rate_api_base_url: str = "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1"
    request_timeout_seconds: int = 15
    rate_cache_ttl_seconds: int = 24 * 60 * 60

    default_from_currency: str = "USD"
    default_to_currency: str = "JPY"

    @field_validator("default_from_currency", "default_to_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("rate_api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
