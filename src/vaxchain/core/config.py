"""
VaxChain - Configuration Management
===================================

Environment-based settings for the cold-chain ledger service:
- Database connection
- Producer schedule and lineage identity
- Acceptable temperature range for alert evaluation
- Store retry policy
- Server and logging options

Every setting can be overridden with a ``VAXCHAIN_`` prefixed environment
variable, e.g. ``VAXCHAIN_DATABASE_URL``.
"""

import os
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "VAXCHAIN_"


class Settings(BaseModel):
    """Validated service configuration."""

    # Application
    APP_NAME: str = "VaxChain Ledger"
    VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False)

    # Server
    HOST: str = Field(default="127.0.0.1")
    PORT: int = Field(default=8080)
    ALLOWED_ORIGINS: List[str] = Field(default=["*"])

    # Database
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./data/vaxchain.db")

    # Producer
    PRODUCER_ENABLED: bool = Field(default=True)
    PRODUCER_INTERVAL_SECONDS: float = Field(default=10.0)
    LINEAGE_ID: str = Field(default="VAC-000123")
    CONTAINER_NO: str = Field(default="CONT-0001")

    # Alert evaluation
    SAFE_TEMP_MIN: float = Field(default=2.0)
    SAFE_TEMP_MAX: float = Field(default=8.0)

    # Simulated sensor
    SENSOR_TEMP_LOW: float = Field(default=0.0)
    SENSOR_TEMP_HIGH: float = Field(default=12.0)
    SENSOR_SEED: int = Field(default=42)

    # Store retries
    STORE_RETRY_ATTEMPTS: int = Field(default=3)
    STORE_RETRY_BASE_DELAY: float = Field(default=0.5)
    STORE_RETRY_MAX_DELAY: float = Field(default=8.0)

    # Observability
    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse comma-separated origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("DATABASE_URL", "LINEAGE_ID")
    @classmethod
    def require_non_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("value must not be empty")
        return v

    @field_validator("PRODUCER_INTERVAL_SECONDS")
    @classmethod
    def validate_interval(cls, v):
        if v <= 0:
            raise ValueError("PRODUCER_INTERVAL_SECONDS must be positive")
        return v

    @field_validator("STORE_RETRY_ATTEMPTS")
    @classmethod
    def validate_attempts(cls, v):
        if v < 1:
            raise ValueError("STORE_RETRY_ATTEMPTS must be at least 1")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.SAFE_TEMP_MIN >= self.SAFE_TEMP_MAX:
            raise ValueError("SAFE_TEMP_MIN must be lower than SAFE_TEMP_MAX")
        if self.SENSOR_TEMP_LOW > self.SENSOR_TEMP_HIGH:
            raise ValueError("SENSOR_TEMP_LOW must not exceed SENSOR_TEMP_HIGH")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "Settings":
        """Build settings from ``VAXCHAIN_*`` variables, then apply overrides."""
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment."""
    return Settings.from_env()
