from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    google_cloud_project: str = ""
    firestore_emulator_host: Optional[str] = None
    # Off by default: history and settings overrides stay in memory
    use_firestore: bool = False
    # CORS origins; set ALLOWED_ORIGINS env var for production (comma-separated)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    debug: bool = False

    # Engine housekeeping
    cleanup_interval_seconds: float = 30.0
    # Ended games stay queryable this long so dashboards can show the result
    retention_seconds: float = 60.0
    live_stats_top_n: int = 5
    history_default_limit: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
