"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup, so a malformed value fails fast with a clear error message.

Usage:
    from chainflow_escrow.config import get_settings
    settings = get_settings()
    print(settings.store_backend)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the ChainFlow escrow ledger."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Store ---
    # "memory" keeps everything in-process; "sql" persists through SQLAlchemy.
    store_backend: Literal["memory", "sql"] = "memory"

    # --- Database (SQLAlchemy async) ---
    database_url: str = "sqlite+aiosqlite:///./chainflow.db"
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Ledger Defaults ---
    seed_balance: Decimal = Decimal("100")
    default_courier: str = "0x999...Courier"
    seed_demo_catalog: bool = False
    # Accounts granted ADMIN at startup, e.g. ADMIN_ACCOUNTS='["0xabc"]'
    admin_accounts: list[str] = []

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
