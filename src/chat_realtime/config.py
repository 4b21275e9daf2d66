from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_EVENTS_CHANNEL: str = "chat.events"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    WS_HEARTBEAT_SECONDS: int = 30
    WS_AUTH_GRACE_SECONDS: float = 10.0
    WS_SEND_QUEUE_SIZE: int = 256
    WS_DRAIN_TIMEOUT_SECONDS: float = 5.0

    TYPING_IDLE_SECONDS: float = 2.0

    MESSAGE_MAX_LENGTH: int = 4000

    RECONNECT_BASE_DELAY_MS: int = 1000
    RECONNECT_MAX_DELAY_MS: int = 30000
    RECONNECT_MULTIPLIER: float = 2.0
    RECONNECT_MAX_ATTEMPTS: int = 5

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


settings = Settings()  # type: ignore[call-arg]
