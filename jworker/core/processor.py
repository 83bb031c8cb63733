"""
Processor — one worker task in the Manager's pool.

Loop: fetch one job (blocking up to the fetch timeout), execute it, repeat
until told to stop.

Execution of a job:
  1. parse the payload and resolve its handler through the registry
  2. record it in the worker-state map (removed again whatever happens)
  3. run the server middleware chain around the handler's perform()

Acknowledgement
---------------
A job is acknowledged once execution has reached the middleware chain, even
if the handler then raises: work that has started is not silently run
again. A failure before that point (bad JSON, unknown handler) leaves the job
unacknowledged. Cancellation by Manager.kill() at the shutdown deadline
never acknowledges; the Manager has already pushed the job back.

Exit paths
----------
  done flag observed     → Manager.processor_stopped(self)
  asyncio.CancelledError → Manager.processor_stopped(self), re-raised
  any other exception    → Manager.processor_died(self, exc), which starts a
                           replacement unless the Manager is shutting down
"""
from __future__ import annotations

import asyncio
import contextlib
import contextvars
import copy
import functools
import inspect
import logging
import secrets
import time
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from jworker.core import codec
from jworker.core.fetch import BasicFetch, UnitOfWork
from jworker.domain.errors import StoreError
from jworker.domain.models import WorkerState
from jworker.log import job_context

if TYPE_CHECKING:
    from jworker.core.manager import Manager

logger = logging.getLogger(__name__)


class Processor:
    def __init__(self, manager: Manager) -> None:
        self.manager = manager
        self.runtime = manager.runtime
        self.identity = secrets.token_hex(6)
        self.job: UnitOfWork | None = None
        self.task: asyncio.Task[None] | None = None
        self._done = False
        self._down: float | None = None

        strategy_class = manager.options.fetch or BasicFetch
        self.strategy = strategy_class(manager.options, self.runtime.store)

    def __repr__(self) -> str:
        return f"<Processor {self.identity} done={self._done}>"

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Spawn the run loop; calling it again is a no-op."""
        if self.task is None:
            self.task = asyncio.create_task(
                self._run(), name=f"jworker-processor-{self.identity}"
            )

    async def terminate(self, wait: bool = False) -> None:
        """Ask the loop to stop after the current job and fetch."""
        self._done = True
        if self.task is not None and wait:
            await self.task

    async def kill(self, wait: bool = False) -> None:
        """
        Cancel the loop mid-job.

        Only used once the shutdown deadline has passed; the in-flight job
        must already have been requeued by the caller.
        """
        self._done = True
        if self.task is None:
            return
        self.task.cancel()
        if wait:
            with contextlib.suppress(asyncio.CancelledError):
                await self.task

    @property
    def done(self) -> bool:
        return self._done

    # ------------------------------------------------------------------ #
    # Run loop                                                             #
    # ------------------------------------------------------------------ #

    async def _run(self) -> None:
        try:
            while not self._done:
                await self._process_one()
            await self.manager.processor_stopped(self)
        except asyncio.CancelledError:
            await self.manager.processor_stopped(self)
            raise
        except Exception as exc:
            await self.manager.processor_died(self, exc)

    async def _process_one(self) -> None:
        self.job = await self._fetch()
        if self.job is not None:
            await self._process(self.job)
        self.job = None

    async def _get_one(self) -> UnitOfWork | None:
        try:
            work = await self.strategy.retrieve_work()
        except StoreError as exc:
            await self._handle_fetch_exception(exc)
            return None
        if self._down is not None:
            logger.info(
                "Store is online, %.1f sec downtime", time.monotonic() - self._down
            )
            self._down = None
        return work

    async def _fetch(self) -> UnitOfWork | None:
        work = await self._get_one()
        if work is not None and self._done:
            await work.requeue()
            return None
        return work

    async def _handle_fetch_exception(self, exc: StoreError) -> None:
        """Log the first failure of an outage with its traceback, then back off."""
        if self._down is None:
            self._down = time.monotonic()
            logger.error("Error fetching job: %s", exc, exc_info=exc)
        await asyncio.sleep(1)

    # ------------------------------------------------------------------ #
    # Execution                                                            #
    # ------------------------------------------------------------------ #

    async def _process(self, work: UnitOfWork) -> None:
        jobstr = work.job
        queue = work.queue_name

        ack = False
        job: dict[str, Any] | None = None
        try:
            job = codec.load_json(jobstr)
            factory = self.runtime.registry.resolve(job["class"])
            worker = factory()
            worker.jid = job.get("jid")

            with self._stats(job, queue), job_context(job):
                # Acknowledged from here on, even if middleware or perform raises.
                ack = True

                async def _terminal() -> Any:
                    return await self._execute_job(worker, _cloned(job["args"]))

                await self.runtime.server_middleware.invoke(
                    worker, job, queue, terminal=_terminal
                )
            ack = True
        except asyncio.CancelledError:
            # Killed at the shutdown deadline; the job did not finish.
            ack = False
            raise
        except Exception:
            logger.exception(
                "Job raised exception: queue=%s job=%s", queue, job if job else jobstr
            )
            raise
        finally:
            if ack:
                await work.acknowledge()

    async def _execute_job(self, worker: Any, cloned_args: list[Any]) -> Any:
        if inspect.iscoroutinefunction(worker.perform):
            return await worker.perform(*cloned_args)
        # Runs on the Manager's executor, keeping the job's log context.
        context = contextvars.copy_context()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.manager.executor,
            functools.partial(context.run, worker.perform, *cloned_args),
        )

    @contextlib.contextmanager
    def _stats(self, job: dict[str, Any], queue: str) -> Iterator[None]:
        stats = self.runtime.stats
        stats.worker_state[self.identity] = WorkerState(
            queue=queue, payload=_cloned(job), started_at=int(time.time())
        )
        try:
            yield
        except BaseException:
            stats.incr_failed()
            raise
        finally:
            stats.worker_state.pop(self.identity, None)
            stats.incr_processed()


def _cloned(value: Any) -> Any:
    """Deep copy so a handler mutating its args cannot alter the stored job."""
    return copy.deepcopy(value)
