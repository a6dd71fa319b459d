"""
Application configuration management using Pydantic Settings
Handles all environment variables for the notification pipeline
"""

from pydantic_settings import BaseSettings
from typing import Optional, List, Dict
from functools import lru_cache

class Settings(BaseSettings):
    """Main application settings"""

    # Application Settings
    APP_NAME: str = "NotifyQ"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./notifyq.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_ECHO: bool = False

    # Redis Configuration
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_DECODE_RESPONSES: bool = True
    REDIS_MAX_CONNECTIONS: int = 50

    # Celery Configuration
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TIMEZONE: str = "UTC"

    # Dispatch worker
    DISPATCH_BATCH_SIZE: int = 50
    DISPATCH_INTERVAL_SECONDS: int = 60
    STUCK_ITEM_TIMEOUT_SECONDS: int = 600
    RECLAIM_INTERVAL_SECONDS: int = 300
    QUEUE_RETENTION_DAYS: int = 30
    RATE_LIMIT_RETENTION_HOURS: int = 48

    # Items at or above this priority are delivered during quiet hours
    QUIET_HOURS_BYPASS_PRIORITY: Optional[int] = 10

    # Delivery port: "null" leaves pending rows for providers to poll,
    # "celery" enqueues a deliver task per row
    DELIVERY_PORT: str = "null"

    # Per-channel rate limiting (sends per user, per type, per hour)
    RATE_LIMIT_BACKEND: str = "database"  # database | redis
    RATE_LIMIT_PUSH_PER_HOUR: int = 10
    RATE_LIMIT_EMAIL_PER_HOUR: int = 10
    RATE_LIMIT_SMS_PER_HOUR: int = 3

    # SMS Service (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_MESSAGING_SERVICE_SID: Optional[str] = None
    SMS_DEFAULT_REGION: str = "US"

    # Email Configuration
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    FROM_EMAIL: str = "alerts@notifyq.local"
    FROM_NAME: str = "NotifyQ"

    # Firebase Configuration (Optional)
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None

    # Internal API
    INTERNAL_API_TOKEN: Optional[str] = None
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/notifyq.log"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def database_url_async(self) -> str:
        """Convert sync database URL to async"""
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://")
        return self.DATABASE_URL

    @property
    def channel_rate_limits(self) -> Dict[str, int]:
        """Hourly send limits keyed by channel name"""
        return {
            "push": self.RATE_LIMIT_PUSH_PER_HOUR,
            "email": self.RATE_LIMIT_EMAIL_PER_HOUR,
            "sms": self.RATE_LIMIT_SMS_PER_HOUR,
        }

@lru_cache()
def get_settings() -> Settings:
    """
    Create cached settings instance
    This ensures settings are loaded only once
    """
    return Settings()

# Global settings instance
settings = get_settings()
