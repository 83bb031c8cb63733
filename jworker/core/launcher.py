"""
Launcher — starts, supervises and stops the parts of a worker process.

    launcher = Launcher(options, runtime)
    await launcher.run()       # heartbeat, scheduler, processors
    ...
    await launcher.quiet()     # stop taking new work (e.g. on SIGTSTP)
    await launcher.stop()      # drain within options.timeout, then hard stop

A signal name pushed onto <identity>-signals by an external controller is
picked up by the heartbeat and relayed to this process via handle_signal().
"""
from __future__ import annotations

import logging
import os
import secrets
import signal
import socket
import time
from collections.abc import Callable

from jworker.config import Options
from jworker.core.fetch import BasicFetch
from jworker.core.heartbeat import Heartbeat
from jworker.core.manager import Manager
from jworker.core.runtime import Runtime
from jworker.core.scheduled import Poller
from jworker.domain.errors import StoreError
from jworker.domain.models import ProcessInfo

logger = logging.getLogger(__name__)


def relay_signal(name: str) -> None:
    """Deliver signal `name` ("TSTP" or "SIGTSTP") to the current process."""
    signum = signal.Signals[name if name.startswith("SIG") else f"SIG{name}"]
    os.kill(os.getpid(), signum)


class Launcher:
    """
    Parameters
    ----------
    options        : process configuration
    runtime        : shared store, registry, middleware and stats
    signal_handler : called with each signal name from <identity>-signals
                     (default: relay_signal)
    """

    def __init__(
        self,
        options: Options,
        runtime: Runtime,
        *,
        signal_handler: Callable[[str], None] | None = None,
    ) -> None:
        self.options = options
        self.runtime = runtime
        self.identity = f"{socket.gethostname()}:{os.getpid()}:{secrets.token_hex(6)}"
        self.manager = Manager(options, runtime)
        self.poller = Poller(options, runtime)
        self.heartbeat = Heartbeat(self, interval=options.heartbeat_interval)
        self._signal_handler = signal_handler or relay_signal
        self._done = False
        self._data: ProcessInfo | None = None

    async def run(self) -> None:
        """Start everything and return; the work happens in background tasks."""
        await self.runtime.fire_event("startup")
        self.heartbeat.start()
        self.poller.start()
        await self.manager.start()

    async def quiet(self) -> None:
        """Stop this process from picking up any more jobs."""
        self._done = True
        await self.manager.quiet()
        await self.poller.terminate()

    async def stop(self) -> None:
        """
        Shut the process down.

        Returns once all work is complete or requeued, which takes at most
        about options.timeout seconds.
        """
        deadline = time.monotonic() + self.options.timeout

        self._done = True
        await self.manager.quiet()
        await self.poller.terminate()

        await self.manager.stop(deadline)

        # Covers a job picked up after stop began; a no-op for BasicFetch.
        strategy = self.options.fetch or BasicFetch
        await strategy.bulk_requeue([], self.options, self.runtime.store)

        await self.heartbeat.stop()
        await self._clear_heartbeat()

    @property
    def stopping(self) -> bool:
        return self._done

    def to_data(self) -> ProcessInfo:
        if self._data is None:
            self._data = ProcessInfo(
                hostname=socket.gethostname(),
                started_at=time.time(),
                pid=os.getpid(),
                tag=self.options.tag,
                concurrency=self.options.concurrency,
                queues=list(dict.fromkeys(self.options.queues)),
                labels=self.options.labels,
                identity=self.identity,
            )
        return self._data

    def handle_signal(self, name: str) -> None:
        logger.info("Received remote signal %s", name)
        try:
            self._signal_handler(name)
        except (KeyError, ValueError, OSError) as exc:
            logger.warning("Ignoring remote signal %r: %r", name, exc)

    async def _clear_heartbeat(self) -> None:
        # Caller has already stopped the heartbeat task.
        try:
            await (
                self.runtime.store.pipeline(transaction=False)
                .srem("processes", self.identity)
                .delete(f"{self.identity}:workers")
                .execute()
            )
        except StoreError as exc:
            logger.debug("Could not clear heartbeat: %s", exc)
