import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def env_file_path(name: str) -> Path:
    """Working-directory file when present, otherwise the one next to the project."""
    local = Path(name)
    if local.exists():
        return local.resolve()
    return PROJECT_ROOT / name


def env_files(environment: str | None = None) -> list[str]:
    env = (environment if environment is not None else os.getenv("HIREPIPE_ENVIRONMENT", "")).strip().lower()
    overlay = f".env.{env}" if env and env != "development" else ".env.local"
    return [str(env_file_path(".env")), str(env_file_path(overlay))]


class Settings(BaseSettings):
    app_name: str = "HirePipe"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000

    database_url: str
    database_echo: bool = False
    auto_create_tables: bool = True

    redis_url: str = ""
    event_channel: str = "hirepipe:activity"

    # atRisk band is [threshold, threshold * multiplier); breached at or beyond it.
    sla_grace_multiplier: float = Field(default=1.25, ge=1.0)
    sla_sweep_interval_minutes: int = 60
    enable_scheduler: bool = True

    bulk_move_max_items: int = 500

    model_config = SettingsConfigDict(env_prefix="HIREPIPE_", env_file=env_files(), extra="ignore")


settings = Settings()
