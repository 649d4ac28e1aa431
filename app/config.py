# app/config.py

from typing import Literal

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Payer Reconciliation API"
    app_env: str = "development"
    debug: bool = True
    frontend_url: str = "http://localhost:3000"

    # Supabase (clients are created lazily, so these may stay empty in tests)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # Tables
    players_table: str = "players"
    aliases_table: str = "payer_aliases"
    runs_table: str = "reconciliation_runs"
    tenant_users_table: str = "tenant_users"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Matching config
    fuzzy_strategy: Literal["token_set", "label"] = "token_set"
    batch_workers: int = 4
    max_payer_key_length: int = 200
    fuzzy_work_budget: int = 5_000_000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
