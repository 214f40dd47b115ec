from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from environment variables.

    All settings can be configured via ``KEYLIMITER_*`` environment variables
    or a .env file. Limiters never read these directly; the factory helpers
    in ``keylimiter.factory`` translate them into constructor arguments.
    """

    # Store backend selection
    store_backend: Literal["memory", "redis"] = "memory"

    # Redis settings (used when store_backend == "redis")
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 2.0  # Seconds before a command surfaces StoreUnavailable

    # Key namespace shared by all limiters built from settings
    key_prefix: str = "ratelimit"

    # Limiter settings
    algorithm: Literal["fixed_window", "sliding_window", "token_bucket"] = "sliding_window"
    limit: int = 60
    window_seconds: float = 60.0
    capacity: float = 10.0
    refill_rate: float = 1.0  # Tokens per second
    bucket_state_ttl: float | None = None  # None = bucket state never expires

    # What to do when the store fails: propagate | open | closed
    fail_policy: Literal["propagate", "open", "closed"] = "propagate"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("limit")
    @classmethod
    def validate_limit_positive(cls, v: int) -> int:
        """Validate the request limit is positive."""
        if v < 1:
            raise ValueError("limit must be at least 1")
        return v

    @field_validator("window_seconds", "capacity", "refill_rate", "redis_socket_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate rate values are positive."""
        if v <= 0:
            raise ValueError("Rate limit values must be positive")
        return v

    @field_validator("bucket_state_ttl")
    @classmethod
    def validate_state_ttl(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("bucket_state_ttl must be positive when set")
        return v

    model_config = SettingsConfigDict(
        env_prefix="KEYLIMITER_", env_file=".env", extra="ignore"
    )


# Global settings instance
settings = Settings()
