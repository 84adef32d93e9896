"""Application settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

DEFAULT_STORES = ["Roberto Automóveis", "RN Multimarcas"]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "dealerdesk"
    app_env: str = "dev"
    app_debug: bool = False
    gateway_backend: Literal["rest", "postgres"] = "rest"
    database_url: str = ""
    supabase_url: str = ""
    supabase_api_key: str = ""
    request_timeout_s: float = Field(default=10.0, ge=0.1)
    # Cache freshness windows and polling intervals, in seconds.
    pending_stale_s: float = Field(default=30.0, ge=0.0)
    consolidated_stale_s: float = Field(default=30.0, ge=0.0)
    task_stats_stale_s: float = Field(default=30.0, ge=0.0)
    analytics_stale_s: float = Field(default=120.0, ge=0.0)
    analytics_poll_s: float = Field(default=300.0, ge=1.0)
    health_stale_s: float = Field(default=120.0, ge=0.0)
    health_poll_s: float = Field(default=300.0, ge=1.0)
    polling_enabled: bool = True
    stores: list[str] = Field(default_factory=lambda: list(DEFAULT_STORES))
    notification_history: int = Field(default=50, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="DEALERDESK_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def require_backend_config(self) -> None:
        """Fail fast when the selected backend has no connection settings."""
        if self.gateway_backend == "postgres":
            if not self.database_url:
                raise RuntimeError(
                    "Missing database URL. Set DEALERDESK_DATABASE_URL "
                    "when DEALERDESK_GATEWAY_BACKEND=postgres."
                )
            return
        missing = [
            name
            for name, value in (
                ("DEALERDESK_SUPABASE_URL", self.supabase_url),
                ("DEALERDESK_SUPABASE_API_KEY", self.supabase_api_key),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(f"Missing REST gateway configuration: {', '.join(missing)}.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
