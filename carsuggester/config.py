from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Runtime
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Supabase: auth keys and the Postgres instance holding user_events
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_JWKS_URL: str | None = None
    SUPABASE_DB_URL: str = ""

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = Field(default=2, ge=1)
    DB_POOL_MAX_SIZE: int = Field(default=8, ge=1)
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0
    DB_POOL_MAX_LIFETIME: float = 3600.0
    DB_STATEMENT_TIMEOUT: str = "60s"

    # =================================================================
    # ANALYTICS SETTINGS
    # =================================================================
    ANALYTICS_SYNC_ENABLED: bool = True
    ANALYTICS_SYNC_INTERVAL_SECONDS: float = 30.0
    ANALYTICS_PROFILE_HISTORY_LIMIT: int = Field(default=100, ge=1)
    ANALYTICS_REALTIME_WINDOW_MINUTES: int = Field(default=60, ge=1)
    ANALYTICS_EVENT_RETENTION_DAYS: int = Field(default=90, ge=1)
    ANALYTICS_RETENTION_INTERVAL_HOURS: float = 24.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("ANALYTICS_SYNC_INTERVAL_SECONDS", "ANALYTICS_RETENTION_INTERVAL_HOURS")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("interval must be positive")
        return value

    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        return f"{self.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"

    def get_db_pool_config(self) -> dict:
        """
        Keyword arguments for AsyncConnectionPool.

        Local development runs with a smaller pool; the event sync only ever
        holds one connection at a time.
        """
        if self.environment == "development":
            return {
                "min_size": 1,
                "max_size": 4,
                "timeout": 15.0,
                "max_idle": self.DB_POOL_MAX_IDLE,
                "max_lifetime": self.DB_POOL_MAX_LIFETIME,
            }

        return {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": max(self.DB_POOL_MIN_SIZE, self.DB_POOL_MAX_SIZE),
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }


settings = Settings()
