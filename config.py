"""
Configuration module for the Store-Credit Exchange service.
Loads settings from environment variables and an optional .env file.
"""

from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=5000,
        alias="APP_PORT",
        description="Port to bind the application"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        alias="CORS_ORIGINS",
        description="Origins allowed to call the API from a browser"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    # Data Store Configuration
    data_backend: str = Field(
        default="cosmos",
        alias="DATA_BACKEND",
        description="Document store backend: 'cosmos' or 'memory'"
    )

    # Credit Ledger (Shopify) Configuration
    shopify_store_url: str = Field(
        default="",
        alias="SHOPIFY_STORE_URL",
        description="Shopify store domain, e.g. my-store.myshopify.com"
    )
    shopify_access_token: str = Field(
        default="",
        alias="SHOPIFY_ACCESS_TOKEN",
        description="Shopify Admin API access token"
    )
    shopify_api_version: str = Field(
        default="2024-01",
        alias="SHOPIFY_API_VERSION",
        description="Shopify Admin API version"
    )
    ledger_currency: str = Field(
        default="INR",
        alias="LEDGER_CURRENCY",
        description="Currency reported alongside loyalty point balances"
    )
    ledger_timeout_seconds: float = Field(
        default=10.0,
        alias="LEDGER_TIMEOUT_SECONDS",
        description="Upper bound on any single credit ledger call"
    )

    # Exchange Lifecycle
    allow_admin_delete_completed: bool = Field(
        default=True,
        alias="ALLOW_ADMIN_DELETE_COMPLETED",
        description="Whether administrators may delete completed exchanges"
    )
    transition_max_attempts: int = Field(
        default=3,
        alias="TRANSITION_MAX_ATTEMPTS",
        description="Re-fetch attempts when a transition loses a concurrent write"
    )

    # Authentication
    session_ttl_hours: int = Field(
        default=24,
        alias="SESSION_TTL_HOURS",
        description="Lifetime of a login session token"
    )

    # Rate Limiting
    rate_limit_backend: str = Field(
        default="memory",
        alias="RATE_LIMIT_BACKEND",
        description="'memory' for single-instance deployments, 'redis' to share limits across instances"
    )
    rate_limit_redis_url: str = Field(
        default="",
        alias="RATE_LIMIT_REDIS_URL",
        description="Redis URL for the shared rate limiter"
    )
    rate_limit_trust_forwarded: bool = Field(
        default=False,
        alias="RATE_LIMIT_TRUST_FORWARDED",
        description="Key limits on X-Forwarded-For; enable only behind a proxy that overwrites it"
    )
    rate_limit_general_points: int = Field(default=100, alias="RATE_LIMIT_GENERAL_POINTS")
    rate_limit_general_duration: int = Field(default=60, alias="RATE_LIMIT_GENERAL_DURATION")
    rate_limit_auth_points: int = Field(default=20, alias="RATE_LIMIT_AUTH_POINTS")
    rate_limit_auth_duration: int = Field(default=60, alias="RATE_LIMIT_AUTH_DURATION")
    rate_limit_auth_block_seconds: int = Field(default=120, alias="RATE_LIMIT_AUTH_BLOCK_SECONDS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


# Global settings instance
settings = Settings()
