"""
Manager — owns the pool of Processors and their lifecycle.

  start()                     start every Processor
  processor_died(p, reason)   drop p and start a replacement (unless stopping)
  processor_stopped(p)        drop p
  quiet()                     stop handing out new work
  stop(deadline)              quiet, wait for the pool to drain until the
                              deadline, then requeue in-flight jobs and kill
                              whatever is left

The pool never grows past `concurrency`. It can briefly be smaller while a
replacement is being started; outside shutdown it heals back to
`concurrency`.
"""
from __future__ import annotations

import asyncio
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor

from jworker.config import Options
from jworker.core.fetch import BasicFetch
from jworker.core.processor import Processor
from jworker.core.runtime import Runtime
from jworker.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Shorter pauses when a developer is watching the terminal
PAUSE_TIME: float = 0.1 if sys.stdout.isatty() else 0.5


class Manager:
    """
    Parameters
    ----------
    options : concurrency, queues, fetch strategy
    runtime : shared store, registry, middleware and stats
    """

    def __init__(self, options: Options, runtime: Runtime) -> None:
        self.options = options
        self.runtime = runtime
        self.pause_time = PAUSE_TIME
        self._count = options.concurrency
        if self._count < 1:
            raise ConfigurationError(f"Concurrency of {self._count} is not supported")

        self._done = False
        self._plock = asyncio.Lock()
        # One thread per Processor for synchronous perform() methods
        self.executor = ThreadPoolExecutor(
            max_workers=self._count, thread_name_prefix="jworker-processor"
        )
        self.workers: set[Processor] = {Processor(self) for _ in range(self._count)}

    @property
    def stopped(self) -> bool:
        return self._done

    async def start(self) -> None:
        for processor in list(self.workers):
            processor.start()

    async def quiet(self) -> None:
        """Flag every Processor to stop after its current job. Idempotent."""
        if self._done:
            return
        self._done = True
        logger.info("Terminating quiet workers")
        for processor in list(self.workers):
            await processor.terminate()
        await self.runtime.fire_event("quiet", reverse=True)

    async def stop(self, deadline: float) -> None:
        """
        Shut the pool down by `deadline` (a time.monotonic() value).

        Returns once the pool is empty, or once busy Processors have been
        killed and their jobs requeued.
        """
        await self.quiet()
        await self.runtime.fire_event("shutdown", reverse=True)
        try:
            await self._drain(deadline)
        finally:
            # Threads still running a killed job finish in the background.
            self.executor.shutdown(wait=False, cancel_futures=True)

    async def _drain(self, deadline: float) -> None:
        # Let asynchronous shutdown callbacks run.
        await asyncio.sleep(self.pause_time)
        if not self.workers:
            return

        logger.info("Pausing to allow workers to finish...")
        remaining = deadline - time.monotonic()
        while remaining > self.pause_time:
            if not self.workers:
                return
            await asyncio.sleep(self.pause_time)
            remaining = deadline - time.monotonic()
        if not self.workers:
            return

        await self._hard_shutdown()

    async def processor_stopped(self, processor: Processor) -> None:
        async with self._plock:
            self.workers.discard(processor)

    async def processor_died(self, processor: Processor, reason: BaseException) -> None:
        async with self._plock:
            self.workers.discard(processor)
            if not self._done:
                replacement = Processor(self)
                self.workers.add(replacement)
                replacement.start()
        logger.debug("Processor %s died: %r", processor.identity, reason)

    async def _hard_shutdown(self) -> None:
        # Deadline passed: requeue the in-flight jobs, then kill their Processors.
        async with self._plock:
            cleanup = list(self.workers)

        if cleanup:
            jobs = [p.job for p in cleanup if p.job is not None]
            logger.warning("Terminating %d busy worker tasks", len(cleanup))
            logger.warning("Work still in progress %r", jobs)

            strategy = self.options.fetch or BasicFetch
            await strategy.bulk_requeue(jobs, self.options, self.runtime.store)

        for processor in cleanup:
            await processor.kill()
