"""Application settings loaded from the environment (and an optional .env)."""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Runtime configuration.

    Keep all endpoints and credentials centralized here.
    """

    APP_ENV: str = os.getenv("APP_ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "http://127.0.0.1:54321")
    SUPABASE_ANON_KEY: Optional[str] = os.getenv("SUPABASE_ANON_KEY")
    AUTH_TIMEOUT: float = float(os.getenv("AUTH_TIMEOUT", "15.0"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./revot.db")
    DEFAULT_SESSION_TITLE: str = os.getenv("DEFAULT_SESSION_TITLE", "Nuevo Chat")

    REPLY_WEBHOOK_URL: str = os.getenv("REPLY_WEBHOOK_URL", "")
    REPLY_TIMEOUT: float = float(os.getenv("REPLY_TIMEOUT", "60.0"))
    FAILURE_NOTICE: str = os.getenv(
        "FAILURE_NOTICE",
        "Error comunicando con el agente. Por favor inténtalo de nuevo.",
    )

    PREFERENCES_PATH: Path = Path(
        os.getenv("PREFERENCES_PATH", str(Path.home() / ".revot" / "preferences.json"))
    ).expanduser()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
