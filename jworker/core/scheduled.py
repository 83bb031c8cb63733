"""
Scheduled jobs — promote due entries of the `schedule` sorted set.

Client.push() with a future `at` stores the job in `schedule`, scored by
its delivery time. The Poller wakes every `poll_interval` seconds and moves
every entry whose score has passed onto its live queue.

Several processes may poll the same set. An entry is only pushed by the
process whose ZREM actually removed it, so each scheduled job is enqueued
once.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from jworker.config import Options
from jworker.core import codec
from jworker.core.client import Client
from jworker.core.runtime import Runtime
from jworker.ports.store import QueueStorePort

logger = logging.getLogger(__name__)

SETS: tuple[str, ...] = ("schedule",)


class Enq:
    """Moves due jobs from sorted sets to their queues through a Client."""

    def __init__(self, store: QueueStorePort, client: Client) -> None:
        self.store = store
        self.client = client

    async def enqueue_jobs(
        self, now: float | None = None, sorted_sets: Sequence[str] = SETS
    ) -> int:
        """Push every entry scored at or before `now`. Returns how many were pushed."""
        now = time.time() if now is None else now
        pushed = 0
        for sorted_set in sorted_sets:
            while True:
                jobs = await self.store.zrangebyscore(
                    sorted_set, "-inf", now, start=0, num=1
                )
                if not jobs:
                    break
                job = jobs[0]
                if await self.store.zrem(sorted_set, job):
                    await self.client.push(codec.load_json(job))
                    pushed += 1
                    logger.debug("enqueued %s: %s", sorted_set, job)
        return pushed


class Poller:
    """Background task running Enq.enqueue_jobs() every `poll_interval` seconds."""

    def __init__(self, options: Options, runtime: Runtime) -> None:
        self.interval = options.poll_interval
        self.enq = Enq(runtime.store, runtime.client())
        self._done = False
        self._sleeper = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="jworker-scheduler")

    async def terminate(self) -> None:
        """Stop polling; waits for an in-progress scan to finish."""
        self._done = True
        self._sleeper.set()
        if self._task is not None:
            task, self._task = self._task, None
            await task

    async def enqueue(self) -> None:
        try:
            await self.enq.enqueue_jobs()
        except Exception:  # noqa: BLE001
            logger.exception("Error enqueueing scheduled jobs")

    async def _run(self) -> None:
        while not self._done:
            await self.enqueue()
            await self._wait()
        logger.info("Scheduler exiting...")

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._sleeper.wait(), self.interval)
        except TimeoutError:
            pass
