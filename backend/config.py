"""
SMS Rental Core - Configuration Management

Centralized configuration for environment variables, provider credentials,
CORS, and deployment settings.
This module ensures:
- No hardcoded provider API keys
- No missing required variables
- Environment-specific settings (dev/staging/prod)
- Secure defaults
"""

from typing import List, Optional, Dict
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== DATABASE ====================
    DATABASE_URL: str = Field(
        default="",
        description="PostgreSQL connection URL (required)"
    )
    POSTGRES_HOST: str = Field(default="")
    POSTGRES_PORT: int = Field(default=5432)
    POSTGRES_DB: str = Field(default="postgres")
    POSTGRES_USER: str = Field(default="")
    POSTGRES_PASSWORD: str = Field(default="")
    POSTGRES_SSLMODE: str = Field(default="require")

    # ==================== PROVIDERS ====================
    SMS_ACTIVATE_API_KEY: str = Field(
        default="",
        description="SMS-Activate API key (adapter disabled when empty)"
    )
    SMSPVA_API_KEY: str = Field(
        default="",
        description="SMSPVA API key (adapter disabled when empty)"
    )
    ANOSIM_API_KEY: str = Field(
        default="",
        description="Anosim API key (adapter disabled when empty)"
    )
    GOGETSMS_API_KEY: str = Field(
        default="",
        description="GoGetSMS API key (adapter disabled when empty)"
    )

    SMS_ACTIVATE_BASE_URL: str = Field(default="https://api.sms-activate.io/stubs/handler_api.php")
    SMSPVA_BASE_URL: str = Field(default="https://smspva.com/api/rent.php")
    ANOSIM_BASE_URL: str = Field(default="https://anosim.net/api/v1")
    GOGETSMS_BASE_URL: str = Field(default="https://www.gogetsms.com/handler_api.php")

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        description="Client-side timeout for a single provider HTTP call"
    )
    PROVIDER_MAX_ATTEMPTS: int = Field(
        default=3,
        description="Total attempts for transient provider failures"
    )
    GOGETSMS_RATE_LIMIT_REQUESTS: int = Field(
        default=10,
        description="GoGetSMS requests allowed per rolling window"
    )
    GOGETSMS_RATE_LIMIT_WINDOW_SECONDS: float = Field(
        default=60.0,
        description="GoGetSMS rolling window length in seconds"
    )

    # ==================== CORS ====================
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list of allowed origins"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )

    # ==================== API ====================
    API_TITLE: str = Field(
        default="SMS Rental Core API",
        description="API title for OpenAPI docs"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS_ORIGINS into a list with environment-aware defaults.

        Production: Only specified origins
        Development/Staging: Include localhost origins
        """
        if self.CORS_ORIGINS and self.CORS_ORIGINS != "*":
            origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        else:
            origins = []

        dev_origins = [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]

        all_origins = set(origins)
        if not self.is_production:
            all_origins.update(dev_origins)

        return list(all_origins)

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def provider_api_keys(self) -> Dict[str, str]:
        """API keys indexed by provider name."""
        return {
            "sms_activate": self.SMS_ACTIVATE_API_KEY,
            "smspva": self.SMSPVA_API_KEY,
            "anosim": self.ANOSIM_API_KEY,
            "gogetsms": self.GOGETSMS_API_KEY,
        }

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        if not self.DATABASE_URL and not self.POSTGRES_HOST:
            errors.append("DATABASE_URL is required")

        if not any(self.provider_api_keys.values()):
            errors.append("At least one provider API key must be configured")

        if self.is_production:
            if self.CORS_ORIGINS == "*":
                errors.append("CORS_ORIGINS cannot be '*' in production")

            if "localhost" in self.DATABASE_URL.lower():
                errors.append("DATABASE_URL cannot point to localhost in production")

            if self.DEBUG:
                errors.append("DEBUG should be False in production")

        return errors

    def get_database_url(self) -> str:
        """Get the appropriate database URL"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.POSTGRES_HOST and self.POSTGRES_USER and self.POSTGRES_PASSWORD:
            ssl = f"?ssl={self.POSTGRES_SSLMODE}" if self.POSTGRES_SSLMODE else ""
            return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}{ssl}"

        raise ValueError("No database configuration found. Set DATABASE_URL or POSTGRES_* variables.")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")
    configured = [name for name, key in settings.provider_api_keys.items() if key]
    logger.info(f"Providers configured: {configured}")

    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== CORS CONFIGURATION ====================

def get_cors_config() -> dict:
    """
    Get CORS middleware configuration.

    Returns configuration dict for CORSMiddleware.
    """
    settings = get_settings()

    return {
        "allow_origins": settings.cors_origins_list,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": [
            "Authorization",
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
            "X-Request-ID",
        ],
        "expose_headers": ["X-Request-ID"],
        "max_age": 600,
    }


# ==================== ENVIRONMENT VALIDATION ====================

PROVIDER_KEY_VARIABLES = [
    ("SMS_ACTIVATE_API_KEY", "sms_activate"),
    ("SMSPVA_API_KEY", "smspva"),
    ("ANOSIM_API_KEY", "anosim"),
    ("GOGETSMS_API_KEY", "gogetsms"),
]


def validate_environment(settings: Optional[Settings] = None) -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results.
    """
    settings = settings or get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    if not (settings.DATABASE_URL or settings.POSTGRES_HOST):
        status["errors"].append("DATABASE_URL is not set")
        status["valid"] = False
    else:
        status["variables"]["DATABASE_URL"] = "✓ Set"

    keys = settings.provider_api_keys
    for variable, provider in PROVIDER_KEY_VARIABLES:
        if not keys[provider]:
            status["warnings"].append(f"{provider} adapter disabled")
            status["variables"][variable] = "⚠ Not set"
        else:
            status["variables"][variable] = "✓ Set"

    if not settings.SENTRY_DSN:
        status["warnings"].append("Error tracking disabled")
        status["variables"]["SENTRY_DSN"] = "⚠ Not set"
    else:
        status["variables"]["SENTRY_DSN"] = "✓ Set"

    errors = [e for e in settings.validate_production_config() if e not in status["errors"]]
    if errors and settings.is_production:
        status["errors"].extend(errors)
        status["valid"] = False

    return status


# Export settings instance for convenience
settings = get_settings()
