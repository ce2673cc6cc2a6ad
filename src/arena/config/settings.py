from __future__ import annotations

from functools import lru_cache
from urllib.parse import quote

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Arena Pairing Service"
    app_env: str = "development"
    app_debug: bool = False
    app_host: str = "127.0.0.1"
    app_port: int = 8000
    app_log_level: str = "INFO"
    app_log_json: bool = True
    app_log_requests: bool = True
    app_docs_enabled: bool = True
    app_cors_origins: list[str] = []
    app_cors_allow_credentials: bool = True
    app_cors_allow_methods: list[str] = ["*"]
    app_cors_allow_headers: list[str] = ["*"]

    # If set, this value has priority over component-based database settings.
    database_url: str = ""

    # PostgreSQL components
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "arena_pairing"
    db_user: str = "postgres"
    db_password: str = ""
    db_timezone: str = "UTC"

    # SQLAlchemy/asyncpg runtime tuning
    db_echo: bool = False
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_timeout_s: int = 30
    db_pool_recycle_s: int = 1800

    # Pairing loop defaults (overridable per tournament on start)
    pairing_batch_limit: int = 80
    pairing_tick_interval_s: float = 3.0
    pairing_claim_timeout_s: float = 30.0
    pairing_min_pool_size: int = 2
    pairing_max_backoff_s: float = 30.0
    pairing_max_rating_gap: float | None = None
    pairing_recent_opponents_limit: int = 5

    # Background workers
    pairing_sweep_interval_s: float = 10.0
    pairing_sweeper_enabled: bool = True
    pairing_event_bus_enabled: bool = True
    pairing_resume_enabled_loops: bool = True

    @model_validator(mode="after")
    def validate_pairing_timing(self) -> Settings:
        if self.pairing_claim_timeout_s <= self.pairing_tick_interval_s:
            raise ValueError(
                "pairing_claim_timeout_s must be greater than pairing_tick_interval_s."
            )
        if self.pairing_batch_limit < 2:
            raise ValueError("pairing_batch_limit must be at least 2.")
        if self.pairing_min_pool_size < 2:
            raise ValueError("pairing_min_pool_size must be at least 2.")
        if self.pairing_sweep_interval_s <= 0:
            raise ValueError("pairing_sweep_interval_s must be positive.")
        return self

    @computed_field
    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url.strip():
            return self.database_url
        return (
            f"postgresql+asyncpg://{quote(self.db_user, safe='')}:{quote(self.db_password, safe='')}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def docs_url(self) -> str | None:
        return "/docs" if self.app_docs_enabled else None

    @computed_field
    @property
    def redoc_url(self) -> str | None:
        return "/redoc" if self.app_docs_enabled else None

    @property
    def uses_sqlite(self) -> bool:
        return self.sqlalchemy_database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
