"""Core application configuration and settings.

Handles environment variables for token signing, super admin identity,
Redis and application behaviour. Loaded once at import and frozen.
"""
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings


# Load environment variables
ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT / ".env")
load_dotenv()

# Secrets shorter than this are refused in production
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Token signing. An empty secret is kept empty: issuing then fails loudly.
    jwt_secret_key: str = Field(
        default_factory=lambda: os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or "",
        alias="JWT_SECRET_KEY"
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    token_ttl_days: int = Field(default=7, ge=1, alias="TOKEN_TTL_DAYS")

    # Account holding the top-level admin tier
    super_admin_email: Optional[str] = Field(default=None, alias="SUPER_ADMIN_EMAIL")

    # Redis Configuration (session registry)
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_password: Optional[str] = Field(default=None, alias="REDIS_PASSWORD")
    redis_db: int = Field(default=0, alias="REDIS_DB")
    session_registry_enabled: bool = Field(default=False, alias="SESSION_REGISTRY_ENABLED")

    # Application Settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # API Settings
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        alias="CORS_ORIGINS"
    )

    class Config:
        case_sensitive = False
        env_file = ".env"
        populate_by_name = True
        frozen = True

    def validate_required_settings(self):
        """Validate that required settings are present."""
        if not self.jwt_secret_key:
            raise ValueError(
                "JWT_SECRET_KEY not set. Credentials cannot be issued without a signing secret."
            )
        if self.environment == "production" and len(self.jwt_secret_key) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters in production."
            )


# Global settings instance
settings = Settings()


# Validate settings on module import (only in non-test environments)
if settings.environment != "test":
    try:
        settings.validate_required_settings()
    except ValueError as e:
        print(f"Configuration Error: {e}")
        # Don't raise in development to allow partial setup
        if settings.environment == "production":
            raise
