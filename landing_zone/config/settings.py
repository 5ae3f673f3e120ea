"""Application settings using Pydantic settings management."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment configuration for the landing zone provisioner."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="LZ_")

    app_name: str = Field(default="aws-organization-config")
    environment: str = Field(default="dev")

    aws_region: str = Field(default="us-east-1")
    aws_profile: Optional[str] = Field(default=None)

    config_file: Optional[Path] = Field(
        default=None,
        description="JSON document holding the OrganizationConfig to provision. Defaults are used when unset.",
    )
    config_version: str = Field(default="1.0.0")
    component: str = Field(default="aws-organization")

    state_table_name: str = Field(default="aws-organization-state")
    state_backup_bucket: str = Field(default="aws-organization-state-backups")
    state_partition_key: str = Field(default="state")
    state_expiry_days: int = Field(default=30, ge=1)
    backup_retention_days: int = Field(default=90, ge=1)

    state_max_attempts: int = Field(default=3)
    state_base_delay_seconds: float = Field(default=1.0)
    state_max_delay_seconds: float = Field(default=30.0)

    retry_max_attempts: int = Field(default=3)
    retry_base_delay_seconds: float = Field(default=2.0)
    retry_max_delay_seconds: float = Field(default=30.0)

    rate_limit_per_second: float = Field(default=10.0)
    rate_limit_burst: int = Field(default=20)

    run_timeout_seconds: float = Field(
        default=1800.0,
        description="Deadline for a whole provisioning run; rate-limiter waits and new attempts honour it.",
    )
    log_level: str = Field(default="INFO")

    @model_validator(mode="after")
    def validate_resilience(self) -> "Settings":
        if self.retry_max_attempts < 1 or self.state_max_attempts < 1:
            raise ValueError("LZ_RETRY_MAX_ATTEMPTS and LZ_STATE_MAX_ATTEMPTS must be at least 1.")

        if self.retry_base_delay_seconds > self.retry_max_delay_seconds:
            raise ValueError("LZ_RETRY_BASE_DELAY_SECONDS must not exceed LZ_RETRY_MAX_DELAY_SECONDS.")
        if self.state_base_delay_seconds > self.state_max_delay_seconds:
            raise ValueError("LZ_STATE_BASE_DELAY_SECONDS must not exceed LZ_STATE_MAX_DELAY_SECONDS.")

        if self.rate_limit_per_second <= 0 or self.rate_limit_burst < 1:
            raise ValueError("rate limit must allow at least one request per second with a burst of 1.")

        if self.run_timeout_seconds <= 0:
            raise ValueError("LZ_RUN_TIMEOUT_SECONDS must be positive.")

        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
