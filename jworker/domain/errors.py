"""
Exception hierarchy for jworker.

JWorkerError
├── StoreError             — backend failure (wraps original exception)
│   └── StoreUnavailableError — store unreachable or timed out
├── InvalidJobError        — malformed job descriptor at enqueue time
├── UnknownHandlerError    — job class not present in the handler registry
└── ConfigurationError     — unusable options (e.g. concurrency < 1)

Shutdown is not part of this hierarchy: a Processor killed after the
shutdown deadline receives asyncio.CancelledError.
"""

from __future__ import annotations


class JWorkerError(Exception):
    """Base class for all jworker exceptions."""


class StoreError(JWorkerError):
    """
    Wraps an underlying failure from a queue store adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the store backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class StoreUnavailableError(StoreError):
    """
    The store could not be reached (connection refused, reset, timed out).

    Callers back off and retry; adapters never retry on their own.
    """


class InvalidJobError(JWorkerError):
    """Raised by the Client when a job descriptor fails validation."""


class UnknownHandlerError(JWorkerError):
    """Raised when a job's class is not registered with the HandlerRegistry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No handler registered for {name!r}")


class ConfigurationError(JWorkerError):
    """Raised for options the runtime cannot honour."""
