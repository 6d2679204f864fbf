from __future__ import annotations

import os

APP_VERSION = "1.0.0"

_DEFAULT_SECRET_KEYS = {"change-me-in-production", ""}


class Settings:
    PROJECT_NAME: str = "BizHub Access"
    API_V1_PREFIX: str = "/api/v1"

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "bizhub")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "bizhub")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "bizhub")

    # Full SQLAlchemy URL; takes precedence over the POSTGRES_* parts when set
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

    ALLOWED_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
        if o.strip()
    ]

    # Invitations
    INVITATION_EXPIRY_DAYS: int = int(os.getenv("INVITATION_EXPIRY_DAYS", "7"))
    INVITATION_CLEANUP_INTERVAL_SECONDS: int = int(
        os.getenv("INVITATION_CLEANUP_INTERVAL_SECONDS", "3600")
    )

    # Public endpoints (registration check, invitation validation)
    REGISTRATION_RATE_LIMIT: str = os.getenv("REGISTRATION_RATE_LIMIT", "20/minute")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
