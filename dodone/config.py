from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Identity (opaque, supplied by the auth layer of the host shell)
    OWNER_ID: str = ""
    BOARD_NAME: str = "Personal Board"

    # Remote store
    REMOTE_URL: str = "http://localhost:54321"
    REMOTE_API_KEY: str = "mock_remote_key"
    REMOTE_TIMEOUT: float | None = None
    REMOTE_POLL_INTERVAL: float = 5.0

    # Local cache
    CACHE_DATABASE_URL: str = "sqlite:///./dodone-cache.db"
    CACHE_PRIMARY_KEY: str = "my-todos"
    CACHE_BACKUP_KEY: str = "my-todos-backup"
    CACHE_LEGACY_KEY: str = "my-todos-legacy"
    CACHE_VERSION: str = "1.0"

    # Sync
    SYNC_DEBOUNCE_SECONDS: float = 0.4
    SYNC_RETRY_SECONDS: float = 3.0

    # Board
    HISTORY_LIMIT: int = 50
    MAX_ITEM_LENGTH: int = 1000

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "*"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
