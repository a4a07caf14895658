"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "ClinicQ Queue Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Storage: "mongo" (replica set required) or "memory"
    STORAGE_BACKEND: str = "mongo"
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    DATABASE_NAME: str = "clinicq"

    # Staff tokens are issued by the auth service; we only verify them
    SECRET_KEY: str = "clinicq-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12

    # Queue behaviour
    CLINIC_TIMEZONE: str = "Africa/Cairo"
    DEFAULT_CONSULTATION_MINUTES: int = 15
    ROLLING_AVERAGE_WINDOW: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
