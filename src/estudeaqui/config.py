"""Application settings loaded from the environment."""
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from estudeaqui.fsrs import FSRSParameters

DEFAULT_DB_PATH = str(Path.home() / ".estudeaqui" / "estudeaqui.db")


class Settings(BaseSettings):
    """Settings read from ESTUDEAQUI_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ESTUDEAQUI_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    db_path: str = DEFAULT_DB_PATH
    user_id: str = "local"
    log_level: str = "WARNING"

    # Scheduler
    request_retention: float = 0.9
    maximum_interval: int = 36500

    def fsrs_parameters(self) -> FSRSParameters:
        return FSRSParameters(
            request_retention=self.request_retention,
            maximum_interval=self.maximum_interval,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
