from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "AttendanceDesk"
    upstream_base_url: str = "http://127.0.0.1:8080"
    upstream_api_token: str | None = None
    upstream_timeout_seconds: float = 20.0
    upstream_page_size: int = 100
    jwt_secret: str = ""
    jwt_issuer: str = "hrms-auth"
    jwt_audience: str = "hrms-portal"
    access_token_minutes: int = 60
    cors_allow_origins: str = "http://127.0.0.1:4200,http://localhost:4200"
    fallback_search_months: int = 12
    max_sessions: int = 256
    overtime_threshold: str = "17:30"
    overtime_ignore_until: str = "08:44"
    saturday_required_checkout: str = "13:00"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_cors_origins() -> list[str]:
    raw = get_settings().cors_allow_origins
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_upstream_base_url() -> str:
    return get_settings().upstream_base_url.rstrip("/")
