"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Entity store (MySQL-protocol compatible) ───────────────────────────
    db_host: str = "mysql"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "channel_views"
    database_url_override: Optional[str] = None
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # 'sql' for the real store, 'memory' for local demos without a database
    store_backend: Literal["sql", "memory"] = "sql"
    store_retry_attempts: int = 1        # one bounded retry on transient failure
    store_retry_backoff_seconds: float = 0.05

    # ── Pagination ─────────────────────────────────────────────────────────
    default_page_size: int = 10
    max_page_size: int = 100
    max_page_offset: int = 1_000_000   # deepest row a page window may start at

    # ── Viewer identity ────────────────────────────────────────────────────
    # Set by the upstream authentication gateway after token verification.
    viewer_header: str = "X-Viewer-Id"

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    tracing_enabled: bool = True
    service_name: str = "channel-views-api"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
