"""
Domain models for jworker — backed by Pydantic v2.

Pydantic handles:
  - validation of job descriptors handed to the Client
  - JSON serialization of worker state and process info for the heartbeat
  - type coercion (tuple args → list, int timestamps → float)

All models are frozen (immutable). The Client and the middleware chains work
on plain dicts produced by model_dump(), which is the shape that travels over
the wire.
"""

import math
import secrets
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_jid() -> str:
    """24 hex characters of cryptographic randomness."""
    return secrets.token_hex(12)


class JobDescriptor(BaseModel):
    """
    One job as pushed to the store.

    job_class   — handler identifier (serialised as "class")
    args        — positional arguments for perform(); always a list
    queue       — target queue name
    jid         — job id, assigned at enqueue time and never changed
    retry       — retry flag or attempt count, carried for outer layers
    created_at  — epoch seconds at first normalisation
    enqueued_at — epoch seconds of the last push to a live queue
    at          — epoch seconds for scheduled delivery

    Unknown keys (job options, middleware annotations) are preserved.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    job_class: str = Field(alias="class")
    args: list[Any]
    queue: str = "default"
    jid: str = Field(default_factory=new_jid)
    retry: bool | int = True
    created_at: float = Field(default_factory=time.time)
    enqueued_at: float | None = None
    at: float | None = None

    @field_validator("job_class", mode="before")
    @classmethod
    def _check_class(cls, v: Any) -> str:
        match v:
            case str() if v:
                return v
            case _:
                raise ValueError(
                    "Job class must be either a Job subclass or the string name of one"
                )

    @field_validator("args", mode="before")
    @classmethod
    def _check_args(cls, v: Any) -> list[Any]:
        """Accept lists and tuples; reject scalars, strings and mappings."""
        match v:
            case list():
                return v
            case tuple():
                return list(v)
            case _:
                raise ValueError(f"Job args must be a list, got {type(v).__name__}")

    @field_validator("at", mode="before")
    @classmethod
    def _check_at(cls, v: Any) -> float | None:
        match v:
            case None:
                return None
            case bool():
                raise ValueError("Job 'at' must be a finite numeric timestamp")
            case int() | float() if math.isfinite(v):
                return float(v)
            case _:
                raise ValueError("Job 'at' must be a finite numeric timestamp")

    def to_payload(self) -> dict[str, Any]:
        """Wire-shaped dict: aliased keys, unset optionals dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)


class WorkerState(BaseModel):
    """What one Processor is busy with, as written to <identity>:workers."""

    model_config = ConfigDict(frozen=True)

    queue: str
    payload: dict[str, Any]
    started_at: int


class ProcessInfo(BaseModel):
    """Static description of a worker process, stored in the heartbeat hash."""

    model_config = ConfigDict(frozen=True)

    hostname: str
    started_at: float
    pid: int
    tag: str = ""
    concurrency: int
    queues: list[str]
    labels: list[str] = []
    identity: str
