from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 3000
    LOG_JSON: bool = True

    # Storage
    DATA_DIR: Path = Path("data")
    LOG_EXTENSION: str = "ndjson"
    MAX_RECENT: int = 500
    FSYNC_ON_APPEND: bool = False

    # Query / export limits
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 200
    EXPORT_MAX_EVENTS: int = 5000

    # Ingest
    MAX_BODY_SIZE: int = 2 * 1024 * 1024
    ALLOWED_CHANNELS: str = ""  # Comma-separated; empty allows any valid name

    # Authentication (operator endpoints only)
    API_KEYS: str = ""  # Comma-separated list of API keys
    REQUIRE_AUTH: bool = False

    def allowed_channels(self) -> set[str]:
        return {c.strip() for c in self.ALLOWED_CHANNELS.split(",") if c.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
