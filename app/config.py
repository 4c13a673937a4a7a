from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, populate_by_name=True)
    data_dir: str = Field(default="./data", alias="DATA_DIR")
    snapshot_dir: str = Field(default="./snapshot", alias="SNAPSHOT_DIR")
    storage_backend: str = Field(default="auto", alias="STORAGE_BACKEND")
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    redis_prefix: str = Field(default="", alias="REDIS_PREFIX")
    site_password: str | None = Field(default=None, alias="SITE_PASSWORD")
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3", alias="COINGECKO_BASE_URL")
    coingecko_enable: int = Field(default=1, alias="COINGECKO_ENABLE")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    price_refresh_enabled: int = Field(default=1, alias="PRICE_REFRESH_ENABLED")
    price_refresh_seconds: int = Field(default=300, alias="PRICE_REFRESH_SECONDS")
    auto_snapshot_min_interval_seconds: int = Field(default=3600, alias="AUTO_SNAPSHOT_MIN_INTERVAL_SECONDS")
    history_max_entries: int = Field(default=100, alias="HISTORY_MAX_ENTRIES")
    recent_snapshots_limit: int = Field(default=50, alias="RECENT_SNAPSHOTS_LIMIT")

    def resolved_backend(self) -> str:
        backend = (self.storage_backend or "auto").lower()
        if backend == "auto":
            return "redis" if self.redis_url else "file"
        return backend

settings = Settings()
