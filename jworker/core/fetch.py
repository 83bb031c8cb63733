"""
Fetch strategies — how a Processor pulls its next job from the store.

BasicFetch issues one BRPOP over every watched queue with a 2 second
timeout, so a Processor notices shutdown within one timeout even when all
queues are idle.

Queue ordering
--------------
strict   — keys are polled in configured order; the command is built once.
weighted — the key list (which repeats a queue once per unit of weight) is
           shuffled and deduplicated on every call, so every queue with work
           is eventually polled first and none starves.

Delivery
--------
BRPOP removes the job from the store. acknowledge() therefore has nothing to
do; a job whose Processor is killed at the shutdown deadline is pushed back
by bulk_requeue() from the Manager's hard-shutdown path.
"""
from __future__ import annotations

import dataclasses
import logging
import random
import re
from collections import defaultdict
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from jworker.ports.store import QueueStorePort

if TYPE_CHECKING:
    from jworker.config import Options

logger = logging.getLogger(__name__)

_QUEUE_PREFIX = re.compile(r".*queue:")


@dataclasses.dataclass(frozen=True)
class UnitOfWork:
    """
    One popped job, owned by exactly one Processor.

    queue — the store key it was popped from, e.g. "queue:default"
    job   — the raw JSON payload, kept verbatim for requeueing
    """

    queue: str
    job: str
    store: QueueStorePort = dataclasses.field(repr=False, compare=False)

    @property
    def queue_name(self) -> str:
        return _QUEUE_PREFIX.sub("", self.queue, count=1)

    async def acknowledge(self) -> None:
        """Nothing to do: BRPOP already removed the job from the store."""

    async def requeue(self) -> None:
        """Push the payload back onto the end BRPOP reads from."""
        await self.store.pipeline(transaction=False).rpush(
            f"queue:{self.queue_name}", self.job
        ).execute()


class FetchStrategy(Protocol):
    """Structural Protocol for pluggable fetch strategies (Options.fetch)."""

    def __init__(self, options: Options, store: QueueStorePort) -> None: ...

    async def retrieve_work(self) -> UnitOfWork | None: ...

    @classmethod
    async def bulk_requeue(
        cls,
        inprogress: Sequence[UnitOfWork],
        options: Options,
        store: QueueStorePort,
    ) -> None: ...


class BasicFetch:
    """Default strategy: a single BRPOP across all queues."""

    TIMEOUT: float = 2

    def __init__(self, options: Options, store: QueueStorePort) -> None:
        self.store = store
        self.strictly_ordered_queues = bool(options.strict)
        self.queues: list[str | float] = [f"queue:{q}" for q in options.queues]
        if self.strictly_ordered_queues:
            self.queues = list(dict.fromkeys(self.queues))
            self.queues.append(self.TIMEOUT)

    def queues_cmd(self) -> list[str | float]:
        """BRPOP arguments: queue keys followed by the timeout."""
        if self.strictly_ordered_queues:
            return self.queues
        queues = random.sample(self.queues, len(self.queues))
        queues = list(dict.fromkeys(queues))
        queues.append(self.TIMEOUT)
        return queues

    async def retrieve_work(self) -> UnitOfWork | None:
        """
        Block up to TIMEOUT for a job. Returns None when every queue was empty.

        Store failures propagate as StoreError / StoreUnavailableError.
        """
        *keys, timeout = self.queues_cmd()
        work = await self.store.brpop([str(k) for k in keys], float(timeout))
        if work is None:
            return None
        queue, job = work
        return UnitOfWork(queue=queue, job=job, store=self.store)

    @classmethod
    async def bulk_requeue(
        cls,
        inprogress: Sequence[UnitOfWork],
        options: Options,
        store: QueueStorePort,
    ) -> None:
        """
        Push in-flight jobs back to their queues in one pipeline.

        A classmethod so the Manager can call it at shutdown without a live
        strategy instance. Best effort: failures are logged, never raised.
        """
        if not inprogress:
            return
        try:
            logger.debug("Re-queueing terminated jobs")
            jobs_to_requeue: dict[str, list[str]] = defaultdict(list)
            for unit_of_work in inprogress:
                jobs_to_requeue[unit_of_work.queue_name].append(unit_of_work.job)

            pipe = store.pipeline(transaction=False)
            for queue, jobs in jobs_to_requeue.items():
                pipe.rpush(f"queue:{queue}", *jobs)
            await pipe.execute()
            logger.info("Pushed %d jobs back to the store", len(inprogress))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to requeue %d jobs: %s", len(inprogress), exc)
