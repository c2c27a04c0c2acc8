"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

_DEFAULT_REPORT_LAYER = Path(__file__).resolve().parents[2] / "report_layer" / "indicators.yml"


class Settings(BaseSettings):
    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "primero"
    postgres_password: str = "primero_pw"
    postgres_db: str = "primero"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # ── Reports ──────────────────────────────────────────
    report_layer_path: str = str(_DEFAULT_REPORT_LAYER)
    query_timeout_ms: int = 10_000
    location_cache_enabled: bool = True
    location_cache_ttl_hours: int = 48
    default_locale: str = "en"

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
