"""
SafeCampus Application Settings

Production-grade configuration management using Pydantic Settings.
All sensitive values are loaded from environment variables.

SECURITY: Never log or expose settings containing secrets.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL document store configuration."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_DB_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="safecampus", description="Database name")
    user: str = Field(default="safecampus", description="Database user")
    password: SecretStr = Field(default=SecretStr("dev_password"), description="Database password")
    pool_size: int = Field(default=10, ge=1, le=100, description="Connection pool size")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Max overflow connections")
    url_override: Optional[str] = Field(
        default=None,
        description="Full async SQLAlchemy URL (takes precedence over host/port/name)",
    )

    @property
    def async_url(self) -> str:
        """Generate async database URL for SQLAlchemy."""
        if self.url_override:
            return self.url_override
        password = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{password}@{self.host}:{self.port}/{self.name}"

    @property
    def sync_url(self) -> str:
        """Generate sync database URL for Alembic migrations."""
        password = self.password.get_secret_value()
        return f"postgresql://{self.user}:{password}@{self.host}:{self.port}/{self.name}"


class FirebaseSettings(BaseSettings):
    """Firebase project configuration (realtime location store, FCM, ID tokens)."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_FIREBASE_")

    credentials_file: Optional[str] = Field(
        default=None,
        description="Path to a service account JSON file (None = application default credentials)",
    )
    database_url: str = Field(
        default="",
        description="Realtime Database URL, e.g. https://<project>.firebaseio.com",
    )
    project_id: Optional[str] = Field(default=None, description="Firebase project id")


class SOSSettings(BaseSettings):
    """SOS lifecycle configuration."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_SOS_")

    session_ttl_hours: int = Field(
        default=48,
        ge=1,
        le=24 * 14,
        description="Lifetime of the per-episode SOS session token",
    )
    token_bytes: int = Field(
        default=32,
        ge=16,
        le=64,
        description="Random bytes per SOS token (16 bytes = 128 bits minimum)",
    )
    tracking_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Interval between background tracking location posts",
    )
    tracking_base_url: str = Field(
        default="http://localhost:8000/api/v1",
        description="Base URL the background tracker posts token-authenticated fixes to",
    )


class LocationSettings(BaseSettings):
    """Live location freshness thresholds."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_LOCATION_")

    active_seconds: int = Field(default=30, ge=1, description="Fix younger than this is 'active'")
    stale_seconds: int = Field(default=300, ge=1, description="Fix younger than this is 'stale'")


class SafeWalkSettings(BaseSettings):
    """Safe walk monitoring configuration."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_SAFEWALK_")

    off_route_threshold_meters: float = Field(
        default=20.0,
        ge=0,
        description="Distance-to-destination increase that flags a walk off-route",
    )


class MonitoringSettings(BaseSettings):
    """Error tracking configuration."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_SENTRY_")

    dsn: str = Field(default="", description="Sentry DSN (empty = disabled)")
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    model_config = SettingsConfigDict(env_prefix="SAFECAMPUS_")

    rate_limit_enabled: bool = Field(default=True)
    rate_limit_requests_per_minute: int = Field(default=60, ge=1, le=1000)
    rate_limit_sos_requests_per_minute: int = Field(default=240, ge=1, le=5000)
    rate_limit_burst_size: int = Field(default=10, ge=0, le=1000)


class Settings(BaseSettings):
    """
    Main application settings.

    All configuration is loaded from environment variables with SAFECAMPUS_ prefix.
    Sensitive values use SecretStr to prevent accidental logging.

    Usage:
        settings = get_settings()
        ttl = settings.sos.session_ttl_hours
    """

    model_config = SettingsConfigDict(
        env_prefix="SAFECAMPUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    debug: bool = Field(default=False, description="Debug mode - NEVER enable in production")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    api_version: str = Field(default="v1", description="API version prefix")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Backend selection
    document_store_backend: Literal["postgres", "memory"] = Field(
        default="memory",
        description="Document store implementation",
    )
    location_store_backend: Literal["firebase", "memory"] = Field(
        default="memory",
        description="Realtime location store implementation",
    )
    push_provider: Literal["fcm", "log"] = Field(
        default="log",
        description="Push notification provider",
    )

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)
    sos: SOSSettings = Field(default_factory=SOSSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    safewalk: SafeWalkSettings = Field(default_factory=SafeWalkSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.
    For testing, construct Settings directly and pass it in.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
