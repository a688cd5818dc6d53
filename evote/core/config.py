"""Application configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    TEST_DATABASE_URL: Optional[str] = None
    DB_POOL_MIN_SIZE: int = 5
    DB_POOL_MAX_SIZE: int = 20
    DB_COMMAND_TIMEOUT: float = 30

    # Per-transaction statement timeout for vote casting and approvals
    VOTE_STATEMENT_TIMEOUT_MS: int = 5000

    # JWT Configuration (tokens are issued by the external auth service)
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Email/SMTP Configuration
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_TLS: bool = True
    FROM_EMAIL: str = "noreply@evote.local"
    FROM_NAME: str = "eVote"
    FRONTEND_URL: str = "http://localhost:3000"

    # Results published notifications
    NOTIFICATIONS_ENABLED: bool = True
    RESULTS_NOTIFY_EMAILS: str = ""

    # Environment
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def results_notify_emails_list(self) -> list[str]:
        """Parse notification recipients from comma-separated string."""
        return [
            email.strip()
            for email in self.RESULTS_NOTIFY_EMAILS.split(",")
            if email.strip()
        ]


settings = Settings()


def get_settings() -> Settings:
    return settings
