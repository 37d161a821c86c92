"""Environment-driven settings. Values come from .env via python-dotenv."""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from simulado.errors import ConfigError

DEFAULT_QUESTIONS_TABLE = "questões crs"
DEFAULT_DAILY_FREE_LIMIT = 10
DEFAULT_COUNT_DEBOUNCE_MS = 500
DEFAULT_WRITE_QUEUE_SIZE = 100
DEFAULT_TIMEZONE = "America/Sao_Paulo"


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_key: str
    questions_table: str = DEFAULT_QUESTIONS_TABLE
    daily_free_limit: int = DEFAULT_DAILY_FREE_LIMIT
    count_debounce_seconds: float = DEFAULT_COUNT_DEBOUNCE_MS / 1000
    write_queue_size: int = DEFAULT_WRITE_QUEUE_SIZE
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from the process environment (and .env, if present)."""
    load_dotenv(env_file)
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ConfigError("SUPABASE_URL and SUPABASE_KEY must be set")

    daily_limit = _int_env("SIMULADO_DAILY_FREE_LIMIT", DEFAULT_DAILY_FREE_LIMIT)
    debounce_ms = _int_env("SIMULADO_COUNT_DEBOUNCE_MS", DEFAULT_COUNT_DEBOUNCE_MS)
    queue_size = _int_env("SIMULADO_WRITE_QUEUE_SIZE", DEFAULT_WRITE_QUEUE_SIZE)
    if daily_limit < 1:
        raise ConfigError("SIMULADO_DAILY_FREE_LIMIT must be positive")
    if debounce_ms < 0 or queue_size < 1:
        raise ConfigError("SIMULADO_COUNT_DEBOUNCE_MS must be >= 0 and SIMULADO_WRITE_QUEUE_SIZE >= 1")

    return Settings(
        supabase_url=url,
        supabase_key=key,
        questions_table=os.environ.get("SIMULADO_QUESTIONS_TABLE") or DEFAULT_QUESTIONS_TABLE,
        daily_free_limit=daily_limit,
        count_debounce_seconds=debounce_ms / 1000,
        write_queue_size=queue_size,
        timezone=os.environ.get("SIMULADO_TIMEZONE") or DEFAULT_TIMEZONE,
        log_level=(os.environ.get("SIMULADO_LOG_LEVEL") or "INFO").upper(),
    )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(levelname)s: %(message)s")
