"""
Options — runtime configuration for a jworker process.

Loaded with pydantic-settings: every field can come from keyword arguments
or from JWORKER_* environment variables (list fields as JSON, e.g.
JWORKER_QUEUES='["critical","default"]').
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Options(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JWORKER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Worker pool
    concurrency: int = Field(default=25, description="Processors per process")
    queues: list[str] = Field(
        default_factory=lambda: ["default"],
        description="Queues to poll; repeat a name to weight it",
    )
    strict: bool = Field(
        default=False, description="Poll queues in order instead of shuffling"
    )
    timeout: float = Field(
        default=8.0, description="Seconds to wait for busy processors on shutdown"
    )

    # Observability
    tag: str = Field(default="", description="Free-text label for this process")
    labels: list[str] = Field(default_factory=list)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Intervals
    poll_interval: float = Field(
        default=5.0, description="Seconds between scheduled-set scans"
    )
    heartbeat_interval: float = Field(
        default=5.0, description="Seconds between heartbeats"
    )

    # Store
    redis_url: str = "redis://localhost:6379/0"

    # Pluggable fetch strategy class; defaults to BasicFetch
    fetch: Any = Field(default=None, exclude=True)

    @field_validator("queues")
    @classmethod
    def _require_queue(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one queue is required")
        return v
