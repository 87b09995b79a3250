from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Kinoview server
    SERVER_URL: str = "http://localhost:8080"
    EVENT_STREAM_PATH: str = "/gallery/ws"
    REQUEST_TIMEOUT_SECONDS: int = 30

    # Persistence
    STATE_PATH: str = "/data/local_storage.json"
    STORE_KEY: str = "kinoview_media"
    PERSIST_ENABLED: bool = True

    # Sync Logic
    PUSH_INTERVAL_SECONDS: float = 300  # 5m
    RECONNECT_DELAY_SECONDS: float = 1
    CATALOG_REFRESH_INTERVAL_SECONDS: int = 3600  # 1h

    # System
    LOG_LEVEL: str = "INFO"
    REMOTE_LOG_ENABLED: bool = False
    HTTP_SERVER_ENABLED: bool = False
    HTTP_SERVER_PORT: int = 8081
    HTTP_SERVER_TOKEN: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
