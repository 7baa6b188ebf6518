from __future__ import annotations

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    APP_NAME: str = "JPX400 Screener"
    ENV: str = "local"

    # local key/value storage (one row per persisted record)
    DATABASE_URL: str = "sqlite+aiosqlite:///./jpx400_storage.db"
    DB_ECHO: bool = False

    # 4.7MB: above this the dataset is stored compressed, and the compressed
    # form must fit under it as well
    COMPRESSION_THRESHOLD_BYTES: int = int(4.7 * 1024 * 1024)

    # universe / retrieval
    UNIVERSE_CSV: str = "jpx400.csv"
    FETCH_MAX_STOCKS: int | None = None  # None = whole universe (e.g. 10 for a quick test run)
    FETCH_MAX_RETRIES: int = 3
    FETCH_RETRY_DELAY: float = 2.0
    FETCH_REQUEST_INTERVAL: float = 0.5  # 2 requests / sec
    FETCH_TIMEOUT: float = 20.0
    YAHOO_CHART_RANGE: str = "7mo"

    @property
    def BASE_DIR(self) -> Path:
        return Path(__file__).resolve().parents[2]

    @property
    def UNIVERSE_CSV_PATH(self) -> Path:
        p = Path(self.UNIVERSE_CSV)
        return p if p.is_absolute() else self.BASE_DIR / "data" / p


settings = Settings()
