"""
Anon-Inbox Service - Service Configuration.

Externalized configuration following 12-factor app principles.
All configuration values are loaded from environment variables.

Architecture Layer: Infrastructure
Principles: Configuration Externalization, Type Safety, Validation
"""
from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from .infrastructure.repository import RepositoryConfig
from .infrastructure.suggestion_service import SuggestionConfig

logger = structlog.get_logger(__name__)

# Known unsafe default values that should be rejected
_UNSAFE_SECRET_PATTERNS = [
    "your-super-secret",
    "your-32-byte",
    "changeme",
    "password",
    "secret123",
    "default-key",
    "xxxxxxxx",
]


def _is_unsafe_secret(value: str) -> bool:
    """Check if a secret value matches known unsafe patterns."""
    if not value:
        return True
    value_lower = value.lower()
    return any(pattern in value_lower for pattern in _UNSAFE_SECRET_PATTERNS)


class MongoConfig(BaseSettings):
    """
    MongoDB configuration.

    Environment Variables:
        MONGO_URI: Connection string (default: mongodb://localhost:27017)
        MONGO_DATABASE: Database name (default: anon_inbox)
        MONGO_USERS_COLLECTION: Users collection (default: users)
        MONGO_SERVER_SELECTION_TIMEOUT_MS: Server selection timeout (default: 5000)
    """

    uri: str = Field(default="mongodb://localhost:27017", description="MongoDB connection string")
    database: str = Field(default="anon_inbox", description="Database name")
    users_collection: str = Field(default="users", description="Users collection name")
    server_selection_timeout_ms: int = Field(
        default=5000,
        ge=100,
        le=60000,
        description="Server selection timeout in milliseconds",
    )

    model_config = SettingsConfigDict(env_prefix="MONGO_", env_file=".env", extra="ignore")


class CORSConfig(BaseSettings):
    """
    CORS configuration for secure cross-origin requests.

    Environment Variables:
        CORS_ALLOWED_ORIGINS: Comma-separated list of allowed origins (default: http://localhost:3000)
        CORS_ALLOW_CREDENTIALS: Allow credentials in CORS requests (default: true)
        CORS_ALLOWED_METHODS: Comma-separated list of allowed HTTP methods (default: GET,POST,DELETE,OPTIONS)
        CORS_ALLOWED_HEADERS: Comma-separated list of allowed headers (default: Authorization,Content-Type)

    SECURITY: Using "*" for origins is not allowed when credentials are enabled.
    """

    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed origins. Set to specific domains in production."
    )
    allow_credentials: bool = Field(default=True, description="Allow credentials in CORS requests")
    allowed_methods: str = Field(
        default="GET,POST,DELETE,OPTIONS",
        description="Comma-separated list of allowed HTTP methods"
    )
    allowed_headers: str = Field(
        default="Authorization,Content-Type,X-Requested-With",
        description="Comma-separated list of allowed headers"
    )

    model_config = SettingsConfigDict(env_prefix="CORS_", env_file=".env", extra="ignore")

    def get_allowed_origins(self) -> list[str]:
        """Get list of allowed origins; a wildcard is dropped when credentials are allowed."""
        origins = [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        if self.allow_credentials and "*" in origins:
            logger.warning("cors_wildcard_rejected", reason="credentials_enabled")
            origins = [origin for origin in origins if origin != "*"]
        return origins

    def get_allowed_methods(self) -> list[str]:
        return [method.strip() for method in self.allowed_methods.split(",") if method.strip()]

    def get_allowed_headers(self) -> list[str]:
        return [header.strip() for header in self.allowed_headers.split(",") if header.strip()]


class ServiceConfig(BaseSettings):
    """
    HTTP service configuration.

    Environment Variables:
        INBOX_SERVICE_APP_NAME: Service name (default: anon-inbox)
        INBOX_SERVICE_APP_ENV: Environment (default: development)
        INBOX_SERVICE_APP_PORT: Service port (default: 8000)
        INBOX_SERVICE_APP_HOST: Service host (default: 0.0.0.0)
        INBOX_SERVICE_APP_LOG_LEVEL: Log level (default: INFO)
        INBOX_SERVICE_APP_SESSION_COOKIE_NAME: Session cookie (default: anon_inbox_session)
        INBOX_SERVICE_APP_SESSION_COOKIE_SECURE: Mark the cookie Secure (default: false)
    """

    name: str = Field(default="anon-inbox", description="Service name")
    env: Literal["development", "staging", "production"] = Field(default="development", description="Environment")
    port: int = Field(default=8000, ge=1, le=65535, description="Service port")
    host: str = Field(default="0.0.0.0", description="Service host")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level"
    )

    session_cookie_name: str = Field(default="anon_inbox_session", description="Session cookie name")
    session_cookie_secure: bool = Field(default=False, description="Send the session cookie over HTTPS only")

    cors: CORSConfig = Field(default_factory=CORSConfig)

    model_config = SettingsConfigDict(env_prefix="INBOX_SERVICE_APP_", env_file=".env", extra="ignore")

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.env == "development"


class InboxServiceSettings(BaseSettings):
    """
    Complete service settings aggregating all configuration sections.

    SECURITY: The JWT secret MUST be provided via environment variable.
    No default is provided to prevent accidental deployment with an
    insecure configuration.
    """

    # REQUIRED: Must be set via INBOX_SERVICE_JWT_SECRET_KEY environment variable
    jwt_secret_key: str = Field(
        ...,
        min_length=32,
        description="JWT secret key (REQUIRED - set via INBOX_SERVICE_JWT_SECRET_KEY env var)"
    )
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = Field(default="HS256", description="JWT algorithm")
    access_token_expire_minutes: int = Field(default=1440, ge=1, le=43200, description="Session token expiry")

    # Password Settings
    argon2_time_cost: int = Field(default=2, ge=1, le=10, description="Argon2 time cost")
    argon2_memory_cost: int = Field(default=65536, ge=1024, description="Argon2 memory cost in KB")
    password_min_length: int = Field(default=6, ge=6, le=128, description="Minimum password length")

    # Inbox Settings
    verify_code_expiry_minutes: int = Field(default=60, ge=1, le=1440, description="Verification code expiry")
    message_max_length: int = Field(default=300, ge=1, le=10000, description="Maximum message length")

    # Nested configurations
    mongo: MongoConfig = Field(default_factory=MongoConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    suggestion: SuggestionConfig = Field(default_factory=SuggestionConfig)

    model_config = SettingsConfigDict(
        env_prefix="INBOX_SERVICE_",
        env_file=".env",
        extra="ignore"
    )

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_secret_not_unsafe(cls, v: str) -> str:
        """Validate that the secret doesn't use a known unsafe default pattern."""
        if _is_unsafe_secret(v):
            raise ValueError(
                "jwt_secret_key appears to use an unsafe default value. "
                "Please provide a secure, randomly generated secret via environment variable."
            )
        return v

    def validate_all(self) -> None:
        """Log the effective, non-secret configuration."""
        logger.info(
            "configuration_validated",
            service=self.service.name,
            env=self.service.env,
            use_mongo=self.repository.use_mongo,
            mongo_database=self.mongo.database,
            suggestions_enabled=self.suggestion.enabled,
        )

    @staticmethod
    def load() -> InboxServiceSettings:
        """
        Load settings from environment variables.

        Returns:
            InboxServiceSettings: Loaded and validated settings
        """
        try:
            settings = InboxServiceSettings()
            settings.validate_all()
            return settings
        except Exception as e:
            logger.error("configuration_load_failed", error=str(e))
            raise
