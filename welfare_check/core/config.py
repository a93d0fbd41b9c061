"""
Configuration management for the Welfare Check service
Uses Pydantic Settings for environment variable management
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application Settings
    app_name: str = Field(default="Welfare Check Reconciler")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)

    # CORS Settings
    allowed_origins: str = Field(default="http://localhost:3000,http://localhost:5173")

    # Call Record Store
    store_backend: str = Field(default="memory")
    turso_db_url: Optional[str] = Field(default=None)
    turso_db_auth_token: Optional[str] = Field(default=None)
    store_timeout_seconds: float = Field(default=5.0)
    update_conflict_retries: int = Field(default=1)
    retry_delay_seconds: float = Field(default=0.0)

    # Retell webhook configuration
    retell_api_key: Optional[str] = Field(default=None)
    webhook_signature_required: bool = Field(default=False)
    timestamp_unit: str = Field(default="seconds")

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",")]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
