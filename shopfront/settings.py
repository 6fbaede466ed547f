# settings.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Project
    PROJECT_NAME: str = "Shopfront Backend"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    LOG_LEVEL: str = "INFO"

    # Frontend URL (CORS)
    CLIENT_URL: str = "http://localhost:3001"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./dev.db"  # default local SQLite

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "usd"

    # Admin endpoints
    ADMIN_API_KEY: str = ""

    # Brevo (transactional email)
    BREVO_API_KEY: str = ""
    EMAIL_SENDER: str = ""
    EMAIL_SENDER_NAME: str = "Digital Product Store"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        frozen=True,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    def missing_required(self) -> List[str]:
        """Names of required settings that are empty."""
        required = {
            "DATABASE_URL": self.DATABASE_URL,
            "STRIPE_SECRET_KEY": self.STRIPE_SECRET_KEY,
        }
        return [key for key, value in required.items() if not value]
