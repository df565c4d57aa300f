from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Server ────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=4444, ge=1, le=65535)
    WS_PATH: str = "/"
    STATIC_DIR: Optional[str] = "public"
    CORS_ORIGINS: str = "*"

    # ── Broadcast ─────────────────────────────────────────────
    BROADCAST_INTERVAL: int = Field(default=1000, ge=100)  # ms
    MAX_CLIENTS: int = Field(default=100, ge=1)
    CONNECTION_TIMEOUT: int = Field(default=30000, ge=1000)  # ms, not enforced
    SEND_QUEUE_SIZE: int = Field(default=256, ge=1)

    # ── Logging ───────────────────────────────────────────────
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    @property
    def broadcast_interval_sec(self) -> float:
        return self.BROADCAST_INTERVAL / 1000.0

    def cors_origins(self) -> list[str]:
        """Comma-separated CORS_ORIGINS as a list; empty means allow all."""
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]


settings = Settings()
