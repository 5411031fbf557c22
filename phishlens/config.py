"""Application configuration using pydantic-settings for 12-factor app compliance."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    api_prefix: str = Field(default="/api/v1")
    metrics_endpoint: str = Field(default="/metrics")

    # Network Configuration (seconds)
    reputation_timeout: float = Field(default=5.0)
    whois_timeout: float = Field(default=10.0)
    ssl_timeout: float = Field(default=10.0)
    ai_timeout: float = Field(default=30.0)
    user_agent: str = Field(default="PhishLens/0.1 (+https://github.com/phishlens)")

    # External APIs
    safe_browsing_api_key: str = Field(default="")
    ai_api_key: str = Field(default="")
    ai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API",
    )
    ai_model: str = Field(default="gpt-4o-mini")

    # Cache
    cache_backend: str = Field(
        default="memory", description="Signal cache backend: memory, redis or none"
    )
    cache_max_memory_mb: int = Field(default=100)
    cache_eviction_threshold: float = Field(default=0.8)
    cache_cleanup_interval: int = Field(
        default=300, description="Seconds between expired-entry sweeps"
    )
    redis_url: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    reputation_cache_ttl: int = Field(default=3600)
    whois_cache_ttl: int = Field(default=86400)
    ssl_cache_ttl: int = Field(default=21600)
    ai_cache_ttl: int = Field(default=1800)

    # Orchestration (milliseconds, matching result telemetry)
    service_timeout_ms: int = Field(default=30000)
    total_analysis_timeout_ms: int = Field(default=60000)
    parallel_execution: bool = Field(default=True)
    minimum_required_services: int = Field(default=2)
    retry_failed_services: bool = Field(default=False)
    max_retries: int = Field(default=1)
    history_size: int = Field(default=100)

    # Scoring
    scoring_config_path: str | None = Field(
        default=None, description="Optional YAML file overriding scoring defaults"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Validate cache backend name."""
        if v.lower() not in ("memory", "redis", "none"):
            raise ValueError("cache_backend must be one of memory, redis, none")
        return v.lower()


# Global settings instance
settings = Settings()
