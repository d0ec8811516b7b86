"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # SellerSprite (Required for live research)
    SELLERSPRITE_API_KEY: Optional[str] = None
    SELLERSPRITE_BASE_URL: str = "https://api.sellersprite.com"
    SELLERSPRITE_MARKETPLACE: str = "US"

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Timeouts
    API_TIMEOUT: int = 45

    # Self-imposed provider throttling (seconds)
    PRODUCT_DELAY_SECONDS: float = 0.5
    ENHANCEMENT_ITEM_DELAY_SECONDS: float = 1.0
    ENHANCEMENT_BATCH_DELAY_SECONDS: float = 2.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
