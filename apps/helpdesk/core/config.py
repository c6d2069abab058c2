from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration read from environment variables."""

    app_name: str = Field(default="Helpdesk API")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s %(levelname)s [%(environment)s] %(name)s %(message)s")

    # Database configuration
    database_dsn: str = Field(default="sqlite+aiosqlite:///./helpdesk.db")

    # Ticket defaults, used until the settings table says otherwise
    default_ticket_state: str = Field(default="new")

    # Observability configuration
    otel_enabled: bool = Field(default=False)
    otel_service_name: str = Field(default="helpdesk-api")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)
    otel_exporter_otlp_headers: str | None = Field(default=None)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
