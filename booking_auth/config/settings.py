"""
Centralized configuration management for the booking authentication service.

This module provides a centralized configuration system using Pydantic BaseSettings
for managing token, hashing, database, email and API settings.
"""
import secrets
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from booking_auth.config.jwt_config import parse_duration
from booking_auth.errors import InvalidDurationFormatError


class Settings(BaseSettings):
    """
    Settings class for all application configuration.

    Every field can be overridden through an environment variable of the same
    name or through the ``.env`` file.
    """
    # Application settings
    APP_NAME: str = "Lawyer Booking Auth"
    APP_DESCRIPTION: str = "Account registration, login and session token lifecycle for the lawyer booking platform"
    APP_VERSION: str = "0.1.0"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # API settings
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # CORS settings, comma separated
    CORS_ORIGINS: str = "*"

    # JWT settings
    JWT_SECRET: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_REFRESH_SECRET: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "lawyer-booking"
    JWT_AUDIENCE: str = "lawyer-booking-api"
    JWT_ACCESS_EXPIRES_IN: str = "7d"
    JWT_REFRESH_EXPIRES_IN: str = "30d"
    JWT_REMEMBER_ME_EXPIRES_IN: str = "90d"

    # One-time token settings
    EMAIL_VERIFICATION_EXPIRES_IN: str = "24h"
    PASSWORD_RESET_EXPIRES_IN: str = "1h"

    # Security settings
    BCRYPT_ROUNDS: int = Field(default=12, ge=10, le=31)
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_REQUIRE_UPPERCASE: bool = True
    PASSWORD_REQUIRE_LOWERCASE: bool = True
    PASSWORD_REQUIRE_DIGIT: bool = True
    PASSWORD_REQUIRE_SPECIAL: bool = True

    # Database settings
    DATABASE_URL: str = "sqlite:///./auth.db"
    DATABASE_ECHO: bool = False

    # Email settings
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: Optional[str] = None
    EMAIL_FROM_NAME: str = "Lawyer Booking"
    FRONTEND_URL: str = "http://localhost:5173"
    NOTIFICATION_WORKERS: int = Field(default=2, ge=1)

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator(
        "JWT_ACCESS_EXPIRES_IN",
        "JWT_REFRESH_EXPIRES_IN",
        "JWT_REMEMBER_ME_EXPIRES_IN",
        "EMAIL_VERIFICATION_EXPIRES_IN",
        "PASSWORD_RESET_EXPIRES_IN",
    )
    @classmethod
    def validate_duration(cls, v: str) -> str:
        """Reject malformed duration expressions at load time."""
        try:
            parse_duration(v)
        except InvalidDurationFormatError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def cors_origins(self) -> List[str]:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


_settings: Optional[Settings] = None


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """
    Get the application settings.

    The settings are read from the environment on first use.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
