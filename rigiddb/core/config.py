"""Library configuration (settings and environment).

Uses pydantic-settings with .env support. Every setting has a default so a
local Redis works without any configuration; override with RIGIDDB_* env vars.
"""

from functools import lru_cache

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment and .env."""

    debug: bool = False

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None
    redis_socket_timeout: float = 5.0
    redis_max_connections: int = 10

    model_config = SettingsConfigDict(
        env_prefix="RIGIDDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("redis_port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        """Reject ports outside the TCP range."""
        if not 0 < value < 65536:
            raise ValueError(f"redis_port must be in 1..65535, got: {value}")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached settings (single instance per process).

    In tests, call get_settings.cache_clear() before overriding env vars so
    the next get_settings() uses the new values.
    """
    return Settings()
