"""
Application configuration using Pydantic settings.
"""

from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "Splitledger"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./data/db.sqlite"

    # Transaction linking
    link_date_window_days: int = 30  # +/- days between charge and order items
    link_amount_tolerance: Decimal = Decimal("3.00")  # Absolute dollars, not percent
    link_suggest_threshold: int = 70
    link_auto_threshold: int = 90
    link_merchant_matching: bool = True
    link_merchant_keywords: List[str] = ["amazon", "amzn", "amazon.com", "amazon marketplace"]
    link_parent_merchant_patterns: List[str] = ["%amazon%", "%amzn%"]
    link_child_merchant: str = "Amazon"  # Order export line items use this exact merchant
    auto_link_on_import: bool = True

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    frontend_url: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


# Global settings instance
settings = Settings()
