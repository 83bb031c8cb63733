"""
Runtime — the shared state of one worker process.

Everything the Processors, Manager, Poller and Heartbeat share lives on one
explicitly constructed Runtime object instead of module globals:

  store             — the QueueStorePort every component talks to
  registry          — job class name → handler factory
  server_middleware — chain wrapped around every job execution
  client_middleware — chain wrapped around every push
  stats             — processed/failed counters and the worker-state map
  lifecycle events  — startup / quiet / shutdown / heartbeat callbacks
"""
from __future__ import annotations

import dataclasses
import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any

from jworker.core.client import Client
from jworker.core.job import HandlerRegistry
from jworker.core.middleware import Chain
from jworker.domain.models import WorkerState
from jworker.ports.store import QueueStorePort

logger = logging.getLogger(__name__)

EVENTS: tuple[str, ...] = ("startup", "quiet", "shutdown", "heartbeat")


@dataclasses.dataclass
class Stats:
    """
    Run-time counters shared by every Processor.

    Counters are guarded by a lock so they can be bumped from worker threads
    as well as the event loop. drain() reads and zeroes both counters in one
    step for the heartbeat.
    """

    processed: int = 0
    failed: int = 0
    worker_state: dict[str, WorkerState] = dataclasses.field(default_factory=dict)

    _lock: threading.Lock = dataclasses.field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def incr_processed(self, amount: int = 1) -> None:
        with self._lock:
            self.processed += amount

    def incr_failed(self, amount: int = 1) -> None:
        with self._lock:
            self.failed += amount

    def drain(self) -> tuple[int, int]:
        """Return (processed, failed) and reset both to zero."""
        with self._lock:
            drained = (self.processed, self.failed)
            self.processed = self.failed = 0
        return drained

    @property
    def busy(self) -> int:
        return len(self.worker_state)


@dataclasses.dataclass
class Runtime:
    store: QueueStorePort
    registry: HandlerRegistry = dataclasses.field(default_factory=HandlerRegistry)
    server_middleware: Chain = dataclasses.field(default_factory=Chain)
    client_middleware: Chain = dataclasses.field(default_factory=Chain)
    stats: Stats = dataclasses.field(default_factory=Stats)

    _events: dict[str, list[Callable[[], Any]]] = dataclasses.field(
        default_factory=lambda: {event: [] for event in EVENTS},
        init=False,
        repr=False,
    )

    def on(self, event: str, callback: Callable[[], Any]) -> None:
        """Register a sync or async callback for a lifecycle event."""
        if event not in self._events:
            raise ValueError(f"Invalid event {event!r}, must be one of {EVENTS}")
        self._events[event].append(callback)

    async def fire_event(
        self, event: str, *, reverse: bool = False, reraise: bool = False
    ) -> None:
        """
        Run the callbacks for `event`.

        Shutdown-side events run in reverse registration order. A failing
        callback is logged and the rest still run unless `reraise` is set.
        """
        callbacks = self._events[event]
        for callback in reversed(callbacks) if reverse else list(callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Exception during %s lifecycle event", event)
                if reraise:
                    raise

    def client(self) -> Client:
        """A Client sharing this runtime's store and client middleware."""
        return Client(self.store, self.client_middleware)
