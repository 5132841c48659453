from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "solarpunk-taskforce-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    database_apply_rls: bool = True
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    mapbox_token: str | None = None
    resend_api_key: str | None = None
    resend_from_email: str | None = None
    moderation_notify_email: str | None = None
    site_url: str = "https://www.solarpunktaskforce.org"
    email_timeout_seconds: float = 10.0
    otel_enabled: bool = True
    otel_service_name: str = "solarpunk-taskforce-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SPT_", extra="ignore")

    @property
    def map_enabled(self) -> bool:
        return bool(self.mapbox_token and self.mapbox_token.strip())

    @property
    def email_enabled(self) -> bool:
        return bool(self.resend_api_key and self.resend_from_email)


@lru_cache
def get_settings() -> Settings:
    return Settings()
