"""
Application configuration management using Pydantic Settings.

Settings are loaded from environment variables (or a .env file) and
validated once at import time.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via .env file or environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== Supabase (work item store) =====
    SUPABASE_URL: str | None = Field(
        default=None,
        description="Supabase project URL"
    )

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (server-side, bypasses RLS)"
    )

    # ===== Redis (page dispatch queue) =====
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for the RQ page queue (redis:// or rediss://)"
    )

    QUEUE_NAME: str = Field(
        default="pages",
        description="RQ queue carrying page dispatch messages"
    )

    QUEUE_BATCH_SIZE: int = Field(
        default=10,
        ge=1,
        le=10,
        description="Maximum messages sent per enqueue batch"
    )

    PAGE_JOB_TIMEOUT: str = Field(
        default="5m",
        description="RQ timeout for a single page task"
    )

    # ===== Generation backend =====
    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for page generation"
    )

    MODEL_NAME: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used to write pages"
    )

    TEMPERATURE: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="LLM temperature for page copy"
    )

    MAX_TOKENS: int = Field(
        default=1200,
        ge=100,
        le=16000,
        description="Maximum tokens per generated page"
    )

    GENERATION_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        ge=1.0,
        description="Timeout for a single backend call"
    )

    # ===== Pipeline tuning =====
    PAGE_STALE_MINUTES: int = Field(
        default=15,
        ge=1,
        description="A processing page claimed longer ago than this may be reclaimed"
    )

    QUEUED_STALE_MINUTES: int = Field(
        default=10,
        ge=1,
        description="A never-claimed queued page older than this is re-dispatched"
    )

    SWEEP_INTERVAL_SECONDS: int = Field(
        default=300,
        ge=10,
        description="How often the stale page sweeper runs"
    )

    PAGE_INSERT_CHUNK_SIZE: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Pages written per insert call when a job is created"
    )

    COUNTER_MAX_RETRIES: int = Field(
        default=20,
        ge=1,
        description="Compare-and-swap attempts before a counter update gives up"
    )

    # ===== Webhooks =====
    WEBHOOK_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        ge=0.1,
        le=60.0,
        description="Timeout for each outbound webhook POST"
    )

    WEBHOOK_CACHE_SECONDS: int = Field(
        default=30,
        ge=0,
        description="How long webhook subscriptions are cached in a worker"
    )

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEBUG: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    @field_validator('DEBUG', mode='before')
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="API server host"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    # ===== Computed Properties =====

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return (
            self.SUPABASE_URL is not None
            and self.SUPABASE_SERVICE_KEY is not None
        )

    @property
    def queue_configured(self) -> bool:
        """Check if the Redis page queue is configured."""
        return self.REDIS_URL is not None

    @property
    def can_generate(self) -> bool:
        """Check if the generation backend has credentials."""
        return self.ANTHROPIC_API_KEY is not None


# Global configuration instance
# Import this in other modules: from pagegen.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Model: {config.MODEL_NAME}")
    print(f"Supabase: {'✓' if config.supabase_configured else '✗'}")
    print(f"Redis queue: {'✓' if config.queue_configured else '✗'}")
    print(f"Stale window: {config.PAGE_STALE_MINUTES} min")
