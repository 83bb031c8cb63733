"""
Heartbeat — periodic liveness and statistics report for a worker process.

Every `interval` seconds one beat:

  1. drains the processed/failed counters and adds them to the cumulative
     and per-day counters (stat:processed, stat:processed:<yyyy-mm-dd>, ...)
  2. rewrites <identity>:workers with the current worker-state map (TTL 60s)
  3. registers <identity> in `processes`, refreshes the <identity> hash
     (info / busy / beat / quiet, TTL 60s)
  4. pops one entry from <identity>-signals and relays it to the owner

Store failures never stop the loop: the first failure of an outage is logged,
and the drained counts are restored so the next beat reports them.

Heartbeat is typed against the structural Protocol _HasProcessState, so any
owner exposing an identity, a runtime, a stopping flag, process info and a
signal handler can drive it; in practice that is the Launcher.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from jworker.domain.errors import StoreError
from jworker.domain.models import ProcessInfo

if TYPE_CHECKING:
    from jworker.core.runtime import Runtime

logger = logging.getLogger(__name__)

# Seconds the per-process keys outlive the last beat
KEY_TTL: int = 60


class _HasProcessState(Protocol):
    """Structural Protocol — what a heartbeat needs to know about its process."""

    identity: str
    runtime: Runtime

    @property
    def stopping(self) -> bool: ...

    def to_data(self) -> ProcessInfo: ...

    def handle_signal(self, name: str) -> None: ...


@dataclasses.dataclass
class Heartbeat:
    """
    Parameters
    ----------
    owner    : the process being reported (normally a Launcher)
    interval : seconds between beats (default 5)
    """

    owner: _HasProcessState
    interval: float = 5.0

    _task: asyncio.Task[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )
    _down: bool = dataclasses.field(default=False, init=False, repr=False)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(
                self._beat_loop(), name=f"jworker-heartbeat-{self.owner.identity}"
            )

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def beat(self) -> None:
        """Send one heartbeat. Never raises for store failures."""
        key = self.owner.identity
        runtime = self.owner.runtime
        stats = runtime.stats
        store = runtime.store

        procd, fails = stats.drain()
        try:
            workers_key = f"{key}:workers"
            nowdate = datetime.now(UTC).strftime("%Y-%m-%d")
            states = {
                tid: state.model_dump_json()
                for tid, state in list(stats.worker_state.items())
            }

            pipe = store.pipeline(transaction=True)
            pipe.incrby("stat:processed", procd)
            pipe.incrby(f"stat:processed:{nowdate}", procd)
            pipe.incrby("stat:failed", fails)
            pipe.incrby(f"stat:failed:{nowdate}", fails)
            pipe.delete(workers_key)
            if states:
                pipe.hset(workers_key, mapping=states)
            pipe.expire(workers_key, KEY_TTL)
            await pipe.execute()
            procd = fails = 0

            pipe = store.pipeline(transaction=True)
            pipe.sadd("processes", key)
            pipe.exists(key)
            pipe.hset(
                key,
                mapping={
                    "info": self.owner.to_data().model_dump_json(),
                    "busy": stats.busy,
                    "beat": time.time(),
                    "quiet": "true" if self.owner.stopping else "false",
                },
            )
            pipe.expire(key, KEY_TTL)
            pipe.rpop(f"{key}-signals")
            _, exists, _, _, msg = await pipe.execute()
        except StoreError as exc:
            if not self._down:
                self._down = True
                logger.error("heartbeat: %s", exc)
            # Restore the drained counts for the next beat
            stats.incr_processed(procd)
            stats.incr_failed(fails)
            return

        if self._down:
            self._down = False
            logger.info("heartbeat: store is reachable again")

        # First beat, or the process key expired during an outage
        if not exists:
            await runtime.fire_event("heartbeat")

        if msg:
            self.owner.handle_signal(msg)

    async def _beat_loop(self) -> None:
        while True:
            try:
                await self.beat()
            except Exception:
                logger.exception("heartbeat: beat failed")
            await asyncio.sleep(self.interval)
