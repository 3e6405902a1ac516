from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "jobchat-api"
    environment: str = "dev"
    repository_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    page_size: int = 30
    access_cache_enabled: bool = True
    access_cache_ttl_seconds: float = 300.0
    access_cache_sweep_interval_seconds: float = 300.0
    auth_url: str | None = None
    auth_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "jobchat-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JM_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
