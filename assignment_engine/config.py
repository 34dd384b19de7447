"""Runtime settings for the submission & auto-grading engine."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (prefix ``ENGINE_``) or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = Field(default="sqlite:///./assignment_engine.db")
    sql_echo: bool = Field(default=False, description="Echo SQL statements")

    # Identity tokens are minted by the platform's auth service; we only verify them.
    identity_secret: str = Field(default="CHANGE_ME_TO_A_LONG_RANDOM_SECRET_VALUE")
    identity_algorithm: str = Field(default="HS256")
    identity_ttl_minutes: int = Field(default=60)

    warning_threshold: int = Field(default=5, ge=1)
    auto_submit_threshold: int = Field(default=10, ge=1)

    # Authoritative channel, as seen from learner clients
    api_base_url: str = Field(default="http://localhost:8000")
    api_timeout_seconds: float = Field(default=10.0)

    log_level: str = Field(default="INFO")


@lru_cache()
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""
    return Settings()
