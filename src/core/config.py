"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Cadence Notification Engine")
    app_env: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/cadence",
        description="PostgreSQL connection URL with asyncpg driver",
    )

    # JWT Authentication
    jwt_secret_key: str = Field(
        default="CHANGE-ME-IN-PRODUCTION",
        description="Shared secret used to verify HS256 bearer tokens",
    )
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_minutes: int = Field(default=30)

    # Scheduler
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the periodic scheduler loop inside the app lifespan",
    )
    scheduler_interval_seconds: int = Field(default=60, ge=1)
    scheduler_batch_size: int = Field(default=500, ge=1)
    scheduler_max_concurrent_users: int = Field(default=8, ge=1)
    scheduler_claim_timeout_seconds: int = Field(
        default=600,
        ge=1,
        description="Claims older than this are handed back to pending",
    )

    # Bundling
    bundle_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    # Engagement tracking
    metrics_decay_factor: float = Field(default=0.9, gt=0.0, lt=1.0)
    stats_window_size: int = Field(default=100, ge=1)
    decay_failure_count: bool = Field(
        default=False,
        description="Apply the windowed moving average to failure_count instead of a raw counter",
    )
    metrics_history_days: int = Field(default=30, ge=1)

    # Delivery policy
    require_successful_delivery: bool = Field(
        default=False,
        description="Mark notifications failed when no channel accepted them",
    )
    engagement_read_rate_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    low_engagement_backoff_hours: int = Field(default=24, ge=1)
    due_soon_lead_hours: int = Field(default=24, ge=0)

    # Cohere (similarity oracle + priority classifier)
    cohere_api_key: str = Field(default="", description="Cohere API key")
    cohere_base_url: str = Field(default="https://api.cohere.com")
    cohere_embed_model: str = Field(default="embed-english-v3.0")
    cohere_timeout_seconds: float = Field(default=10.0, gt=0.0)
    cohere_max_retries: int = Field(default=2, ge=0)

    # Rate Limiting
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable/disable rate limiting (disable for tests)",
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed origins",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver scheme.

        Most providers hand out a plain ``postgresql://`` URL while
        SQLAlchemy's async engine requires ``postgresql+asyncpg://``.
        """
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
