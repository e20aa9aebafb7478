from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "talentmatch"
    environment: str = "dev"
    log_level: str = "INFO"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    change_channel: str = "talentmatch_changes"
    matcher_base_url: str = "http://localhost:8000"
    matcher_timeout_seconds: float = 10.0
    matcher_parse_timeout_seconds: float = 120.0
    read_retry_attempts: int = 3
    read_retry_base_seconds: float = 0.5
    read_retry_max_seconds: float = 5.0
    match_top_n: int = 10
    sync_company_ids: str = ""
    sync_interval_seconds: float = 300.0
    sync_page_size: int = 50
    sync_retry_base_seconds: float = 5.0
    max_backoff_seconds: float = 60.0
    otel_enabled: bool = True
    otel_service_name: str = "talentmatch"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="TM_", extra="ignore")

    def company_ids_to_sync(self) -> list[str]:
        return [chunk.strip() for chunk in self.sync_company_ids.split(",") if chunk.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
