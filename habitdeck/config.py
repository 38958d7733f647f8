"""Application configuration."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (HABITDECK_*)."""

    # Beaver Habits
    endpoint: str = "http://localhost:8080"
    username: str = ""
    password: str = ""
    habits: list[str] = Field(default_factory=list)  # one name per deck row, in row order
    date_fmt: str = "%d-%m-%Y"
    request_timeout: float = 10.0

    # Sync
    sync_interval: float = 10.0  # seconds between full syncs
    enable_notifications: bool = True

    # Deck
    key_size: int = 72  # key face edge in pixels

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 8000

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="HABITDECK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("sync_interval", "request_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


settings = Settings()
