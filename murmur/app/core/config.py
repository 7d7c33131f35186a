from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Deployment environment - selects the default delivery delay range
    environment: Literal["production", "development", "test"] = "production"

    # Debug mode - enables debug endpoints and detailed error responses
    debug: bool = False

    # Server settings (python -m murmur)
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings (optional, in-memory store otherwise)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Rate limiting settings (fixed window)
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: int = 60

    # Input validation limits
    message_max_length: int = 2000
    message_max_words: int = 1000
    custom_persona_max_length: int = 500
    content_filter_enabled: bool = True

    # Text completion provider settings
    completion_provider: str = "worker"  # worker | openai | mock
    completion_timeout: float = 30.0
    completion_max_tokens: int = 1000

    # AI worker (OpenAI-compatible /api/chat endpoint)
    ai_worker_base_url: str = "https://ai-worker-api.example.workers.dev"
    ai_worker_api_key: str = Field(default="", validation_alias="AI_WORKER_API_SECRET_KEY")
    ai_worker_model: str = "@cf/meta/llama-3.1-8b-instruct"

    # OpenAI settings (optional)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    # Gmail delivery settings
    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_refresh_token: str = ""
    gmail_token_url: str = "https://oauth2.googleapis.com/token"
    gmail_api_base_url: str = "https://gmail.googleapis.com/gmail/v1"
    recipient_email: str = ""
    email_subject: str = "Anonymous Feedback"

    # Credential cache settings
    credential_safety_margin_seconds: int = 60
    credential_lifetime_margin_seconds: int = 300  # 1h token held for 55 minutes

    # Delayed delivery settings
    queue_min_delay_seconds: int = 3600  # 1 hour
    queue_max_delay_seconds: int = 6 * 3600  # 6 hours
    queue_dev_max_delay_seconds: int = 600  # 10 minutes in development
    queue_delay_seconds: int | None = None  # Fixed delay override
    queue_safety_ttl_seconds: int = 24 * 3600
    queue_sweep_on_startup: bool = True

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 60.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Operator endpoints
    admin_token: str = ""  # Required for /api/process-queue when set
    test_submit_enabled: bool = False

    @field_validator("rate_limit_max_requests", "rate_limit_window_seconds")
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("message_max_length", "message_max_words", "custom_persona_max_length")
    @classmethod
    def validate_limits_positive(cls, v: int) -> int:
        """Validate input limits are positive."""
        if v < 1:
            raise ValueError("Input limits must be at least 1")
        return v

    @field_validator("completion_timeout", "httpx_connect_timeout", "httpx_read_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("queue_delay_seconds")
    @classmethod
    def validate_fixed_delay(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("queue_delay_seconds cannot be negative")
        return v

    @model_validator(mode="after")
    def validate_delay_window(self) -> "Settings":
        """Safety TTL must outlive the longest possible delay."""
        if self.queue_min_delay_seconds < 0:
            raise ValueError("queue_min_delay_seconds cannot be negative")
        if self.queue_max_delay_seconds < self.queue_min_delay_seconds:
            raise ValueError("queue_max_delay_seconds must be >= queue_min_delay_seconds")
        longest = max(
            self.queue_max_delay_seconds,
            self.queue_dev_max_delay_seconds,
            self.queue_delay_seconds or 0,
        )
        if self.queue_safety_ttl_seconds <= longest:
            raise ValueError("queue_safety_ttl_seconds must exceed the maximum delivery delay")
        return self

    @property
    def delay_range(self) -> tuple[int, int]:
        """(min, max) delivery delay in seconds for the current environment."""
        if self.queue_delay_seconds is not None:
            return self.queue_delay_seconds, self.queue_delay_seconds
        if self.environment == "development":
            return 0, self.queue_dev_max_delay_seconds
        return self.queue_min_delay_seconds, self.queue_max_delay_seconds

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


# Global settings instance
settings = Settings()
