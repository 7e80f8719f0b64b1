"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (tests use "sqlite://").
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="macrofit")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # JWT Authentication - REQUIRED for token signing
    SECRET_KEY: str = Field(
        default=...,  # Required - no default
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    EXPOSE_API_DOCS: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text
    AUDIT_LOG_LEVEL: str = Field(default="INFO")
    AUDIT_LOG_FILE: Optional[str] = Field(default=None)  # stdout when unset

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Public base URL of the web app; webhook notification and checkout
    # return URLs are built from it.
    APP_BASE_URL: str = Field(default="http://localhost:3000")

    # Mercado Pago (PIX + card checkout)
    MP_ACCESS_TOKEN: Optional[str] = Field(default=None)
    MP_BASE_URL: str = Field(default="https://api.mercadopago.com")
    MP_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    # Set to false to accept unsigned notifications (local tunnels only).
    MP_WEBHOOK_SIGNATURE_REQUIRED: bool = Field(default=True)
    PIX_EXPIRATION_MINUTES: int = Field(default=30)

    # OpenAI (plan generation + body photo analysis)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_PLAN_MODEL: str = Field(default="gpt-4o")
    OPENAI_VISION_MODEL: str = Field(default="gpt-4o")
    OPENAI_TIMEOUT_S: int = Field(default=50)
    OPENAI_MAX_RETRIES: int = Field(default=2)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )


# Global settings instance
settings = Settings()
