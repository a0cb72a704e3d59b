"""
Application Configuration
Uses pydantic-settings for validation and type safety
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional, Union, Any
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # App Info
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database - SQLite for dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./schoolfocus.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 0

    # JWT Settings (tokens are issued by the auth service, only verified here)
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: Union[List[str], str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> List[str]:
        if isinstance(v, str) and not v.strip().startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Reference data (static domain/app lists and subcategory taxonomy)
    REFERENCE_DATA_PATH: Optional[str] = None  # None = bundled reference_v1.json

    # Rule cache
    RULE_CACHE_TTL_SECONDS: float = 300.0  # 5 minutes
    RULE_CACHE_MAX_ENTRIES: int = 10_000

    # Usage-pattern learner
    LEARNING_LOOKBACK_DAYS: int = 30
    LEARNING_MIN_VISITS: int = 5
    LEARNING_MAX_DOMAINS: int = 50
    LEARNING_TIMEZONE: str = "UTC"  # Used for average visit hour and distinct days

    # AI suggestion generator
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4-turbo-preview"
    AI_LOOKBACK_DAYS: int = 7
    AI_MIN_VISITS: int = 3
    AI_MAX_DOMAINS: int = 20
    AI_TIMEOUT_SECONDS: float = 60.0

    # Scheduled jobs
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "America/Los_Angeles"
    LEARNING_JOB_HOUR: int = 2   # Daily at 2 AM
    AI_JOB_HOUR: int = 3         # Daily at 3 AM (after learning job)
    LEARNING_STARTUP_DELAY_SECONDS: float = 60.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()
