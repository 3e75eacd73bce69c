from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "CRM Platform"
    DEBUG: bool = False
    ENV: str = "production"

    # Server
    PORT: int = 8000

    # URLs
    APP_URL: str = "http://localhost:8000"  # Backend URL
    FRONTEND_URL: str = "http://localhost:3000"  # Frontend URL for public quote/invoice/project links

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://crm_user:change_me@db:5432/crm_db"
    DATABASE_URL_SYNC: str = "postgresql://crm_user:change_me@db:5432/crm_db"

    # Redis (optional - set to None or empty string to disable)
    REDIS_URL: Optional[str] = None

    @property
    def redis_enabled(self) -> bool:
        """Check if Redis is configured and enabled."""
        return bool(self.REDIS_URL and self.REDIS_URL.strip())

    # Security
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = None
    RESEND_FROM_EMAIL: str = "no-reply@example.com"

    @property
    def email_enabled(self) -> bool:
        """Check if email sending is configured."""
        return bool(self.RESEND_API_KEY and self.RESEND_API_KEY.strip())

    # Business defaults
    QUOTE_VALIDITY_DAYS: int = 30
    INVOICE_PAYMENT_DAYS: int = 30

    # Public token endpoints (quote/invoice/project links)
    PUBLIC_RATE_LIMIT_PER_MINUTE: int = 60

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS string into a list of origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
