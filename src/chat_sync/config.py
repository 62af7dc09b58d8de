from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str = "chat"
    POSTGRES_PASSWORD: str = "chat"
    POSTGRES_DB: str = "chat"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    REALTIME_CHANNEL_PREFIX: str = "chat.conversation."
    REALTIME_SUBSCRIBE_TIMEOUT: float = 10.0
    REALTIME_RECONNECT_DELAY: float = 1.0
    REALTIME_RECONNECT_MAX_DELAY: float = 30.0

    MESSAGES_PAGE_SIZE: int = 50
    MESSAGE_MAX_LENGTH: int = 1000

    READ_RECEIPT_DEBOUNCE_SECONDS: float = 0.2
    DRAFT_DEBOUNCE_SECONDS: float = 0.4

    SEND_MAX_RETRIES: int = 3
    SEND_RETRY_BASE_DELAY: float = 0.5
    SEND_RETRY_MAX_DELAY: float = 5.0

    SEND_RATE_LIMIT: int = 30
    SEND_RATE_WINDOW_SECONDS: int = 60

    DRAFTS_DATABASE_URL: str = "sqlite:///chat_drafts.db"

    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
