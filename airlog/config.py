"""AIRLOG — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    reconcile_interval_seconds: int = 10

    # ── Fetching ──
    fetch_timeout_cap_seconds: float = 30.0
    fetch_timeout_ratio: float = 0.8  # Must stay below 1 so a fetch never outlives its tick
    http_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    ws_persistent: bool = False

    # ── Test connection ──
    test_updates_status: bool = False

    # ── Events API ──
    events_default_limit: int = 100
    events_max_limit: int = 500

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/airlog.db"
        return "sqlite:///./airlog.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
