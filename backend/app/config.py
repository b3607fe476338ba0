"""
Application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "Ledgerwise"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./data/db.sqlite"

    # Rule learning
    learning_min_corrections: int = 3  # Corrections needed before a rule is suggested
    learning_lookback_days: int = 90
    learning_max_samples: int = 5
    learning_coverage_ratio: float = 0.5  # Share of a category's corrections a contains-pattern must explain
    learning_recent_limit: int = 10

    # Suggestion client
    api_base_url: str = "http://localhost:8000"
    dismissed_patterns_path: str = "./data/dismissed_patterns.json"
    correction_record_attempts: int = 3
    correction_record_retry_delay: float = 0.5  # Seconds, doubled after each failed attempt

    # CORS
    frontend_url: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


# Global settings instance
settings = Settings()
