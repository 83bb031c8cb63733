"""
Read-side API over the store — what operators and dashboards look at.

  Statistics(store).fetch()     cumulative counters, queue sizes, process counts
  ProcessSet(store).list()      live worker processes from their heartbeats
  ProcessSet(store).signal(...) ask a worker process to quiet or stop
"""
from __future__ import annotations

import dataclasses
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from jworker.domain.models import ProcessInfo
from jworker.ports.store import QueueStorePort

# How long an unread signal stays in <identity>-signals
SIGNAL_TTL: int = 60


class StatsSnapshot(BaseModel):
    """Point-in-time view of the whole installation."""

    model_config = ConfigDict(frozen=True)

    processed: int
    failed: int
    queues: dict[str, int]
    scheduled_size: int
    processes_size: int
    workers_size: int

    @property
    def enqueued(self) -> int:
        return sum(self.queues.values())


class ProcessEntry(BaseModel):
    """One live process as reported by its last heartbeat."""

    model_config = ConfigDict(frozen=True)

    info: ProcessInfo
    busy: int
    beat: float
    quiet: bool

    @property
    def identity(self) -> str:
        return self.info.identity


@dataclasses.dataclass
class Statistics:
    store: QueueStorePort

    async def fetch(self) -> StatsSnapshot:
        queue_names = sorted(await self.store.smembers("queues"))
        queues = {name: await self.store.llen(f"queue:{name}") for name in queue_names}
        processes = await ProcessSet(self.store).list()
        return StatsSnapshot(
            processed=await self._counter("stat:processed"),
            failed=await self._counter("stat:failed"),
            queues=queues,
            scheduled_size=await self.store.zcard("schedule"),
            processes_size=len(processes),
            workers_size=sum(p.busy for p in processes),
        )

    async def processed_on(self, day: datetime | None = None) -> int:
        return await self._counter(f"stat:processed:{_day(day)}")

    async def failed_on(self, day: datetime | None = None) -> int:
        return await self._counter(f"stat:failed:{_day(day)}")

    async def _counter(self, key: str) -> int:
        return int(await self.store.get(key) or 0)


@dataclasses.dataclass
class ProcessSet:
    store: QueueStorePort

    async def list(self) -> list[ProcessEntry]:
        """Processes with a live heartbeat hash, sorted by identity."""
        entries = []
        for identity in sorted(await self.store.smembers("processes")):
            fields = await self.store.hgetall(identity)
            if not fields:
                continue
            entries.append(
                ProcessEntry(
                    info=ProcessInfo.model_validate_json(fields["info"]),
                    busy=int(fields.get("busy", 0)),
                    beat=float(fields.get("beat", 0)),
                    quiet=fields.get("quiet") == "true",
                )
            )
        return entries

    async def cleanup(self) -> int:
        """Drop identities whose heartbeat hash has expired. Returns how many."""
        stale = [
            identity
            for identity in await self.store.smembers("processes")
            if not await self.store.hgetall(identity)
        ]
        if stale:
            await self.store.pipeline(transaction=False).srem(
                "processes", *stale
            ).execute()
        return len(stale)

    async def signal(self, identity: str, name: str) -> None:
        """Queue signal `name` (e.g. "TSTP", "TERM") for the process's next heartbeat."""
        key = f"{identity}-signals"
        await (
            self.store.pipeline(transaction=True)
            .lpush(key, name)
            .expire(key, SIGNAL_TTL)
            .execute()
        )

    async def quiet(self, identity: str) -> None:
        await self.signal(identity, "TSTP")

    async def stop(self, identity: str) -> None:
        await self.signal(identity, "TERM")


def _day(day: datetime | None) -> str:
    return (day or datetime.now(UTC)).strftime("%Y-%m-%d")
