# backend/reservo/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional, cast

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    cast(Callable[..., bool], load_dotenv)(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the booking engine."""

    # Database
    database_url: str = Field(
        default="sqlite+pysqlite:///./reservo.db",
        description="SQLAlchemy URL for the shared booking store",
    )
    database_echo: bool = False

    # Cache
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for the shared cache; in-memory fallback when unset",
    )
    trust_score_cache_ttl_seconds: int = Field(
        default=300, description="How long a computed trust score is reused"
    )

    # Environment
    environment: str = "development"
    log_level: str = "INFO"
    default_timezone_label: str = Field(
        default="local",
        description="Label for the wall-clock timezone appointment times are stored in",
    )

    # Admission engine
    admission_commit_retries: int = Field(
        default=1,
        description="Bounded re-checks of availability after a lost commit race",
    )
    slow_operation_threshold_seconds: float = Field(
        default=1.0, description="Operations slower than this are logged as warnings"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        env_prefix="RESERVO_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "trust_score_cache_ttl_seconds",
        "admission_commit_retries",
        mode="after",
    )
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("slow_operation_threshold_seconds", mode="after")
    @classmethod
    def _positive_threshold(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        if value is None:
            return "INFO"
        normalized = str(value).strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            logger.warning("Invalid log level %s; defaulting to INFO", value)
            return "INFO"
        return normalized

    def get_database_url(self) -> str:
        """Get the database URL, normalizing legacy postgres:// schemes."""
        url = self.database_url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url


settings = Settings()
