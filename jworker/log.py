"""
Logging setup for worker processes.

Every module logs through logging.getLogger(__name__). While a Processor runs
a job, the job's context ("<Class> JID-<jid>") is held in a ContextVar; the
JobContextFilter copies it onto each record so the formatter can print it.
ContextVars are per-task, so concurrent Processors never see each other's
context.
"""

import contextlib
import contextvars
import logging
import sys
from collections.abc import Iterator
from typing import Any

_job_context: contextvars.ContextVar[str] = contextvars.ContextVar(
    "jworker_job_context", default=""
)

LOG_FORMAT = "%(asctime)s pid=%(process)d%(job_context)s %(levelname)s %(name)s: %(message)s"


class JobContextFilter(logging.Filter):
    """Adds `job_context` (leading space, or empty) to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _job_context.get()
        record.job_context = f" {context}" if context else ""
        return True


def context_label(job: dict[str, Any]) -> str:
    """'<Class> JID-<jid>', preferring a wrapped class name when present."""
    klass = job.get("wrapped") or job.get("class")
    label = f"{klass} JID-{job.get('jid')}"
    if job.get("bid"):
        label += f" BID-{job['bid']}"
    return label


@contextlib.contextmanager
def job_context(job: dict[str, Any]) -> Iterator[None]:
    """Tag log records emitted inside the block with the job's identity."""
    token = _job_context.set(context_label(job))
    try:
        yield
    finally:
        _job_context.reset(token)


def current_context() -> str:
    return _job_context.get()


def setup_logging(level: str = "INFO") -> None:
    """Install a stdout handler with the job-context format on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(JobContextFilter())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
