from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Every timestamp the drill persists is naive UTC, so values read back
    from the store compare cleanly with values produced here.
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Word Drill"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'word_drill.db'}"
    default_total: int = 20
    default_speed: int = 3  # seconds per word
    default_per_page: int = 1
    review_speed: int = 3
    review_per_page: int = 1
    upcoming_window_days: int = 2
    storage_write_attempts: int = 3
    debug: bool = False

    model_config = {"env_prefix": "WORD_DRILL_", "env_file": ".env"}


settings = Settings()
