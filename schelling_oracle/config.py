"""Environment configuration for the Schelling oracle service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Server configuration
    APP_NAME: str = "Schelling Oracle API"
    APP_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: list[str] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Persistence
    ORACLE_DB_PATH: str = "schelling_oracle.db"

    # Aggregation and reputation
    ORACLE_REPUTATION_ALPHA: float = 0.2
    ORACLE_NEUTRAL_REPUTATION: float = 0.5
    ORACLE_DEVIATION_THRESHOLD: float = 0.25

    # Round timing
    ORACLE_SWEEP_INTERVAL_SECONDS: float = 1.0
    ORACLE_MAX_WINDOW_SECONDS: float = 24 * 60 * 60

    # Requester callbacks
    ORACLE_CALLBACK_TIMEOUT_SECONDS: float = 5.0
    ORACLE_CALLBACK_MAX_RETRIES: int = 3


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def get_cors_config(settings: Settings) -> dict:
    """Get CORS middleware configuration."""
    return {
        "allow_origins": settings.CORS_ORIGINS,
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }
