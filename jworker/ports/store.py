"""
QueueStorePort — the single port in jworker.

Any object satisfying this structural Protocol can act as the queue store.
No base class or registration is required. The command set is the subset of
Redis that the job pipeline issues, with the same argument order and the
same result shapes, so redis.asyncio.Redis satisfies it almost directly.

Key layout
----------
  queue:<name>          list    LPUSH by producers, BRPOP by processors
  queues                set     names of every queue ever pushed to
  schedule              zset    payloads scored by delivery timestamp
  stat:processed[:day]  string  INCRBY'd by the heartbeat
  stat:failed[:day]     string  INCRBY'd by the heartbeat
  processes             set     identities of live worker processes
  <identity>            hash    info / busy / beat / quiet, TTL 60s
  <identity>:workers    hash    processor identity → WorkerState JSON, TTL 60s
  <identity>-signals    list    signal names pushed by an external controller

Write contract
--------------
Writes are buffered on a pipeline and sent in one round trip by
execute(). With transaction=True the batch is applied atomically.

Failure contract
----------------
  StoreUnavailableError  the backend could not be reached
  StoreError             any other backend failure
Adapters report failures; they never retry on their own.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PipelinePort(Protocol):
    """
    Buffered batch of write commands.

    Every command method returns the pipeline itself; results are returned
    by execute() in command order.
    """

    def lpush(self, name: str, *values: str) -> PipelinePort: ...

    def rpush(self, name: str, *values: str) -> PipelinePort: ...

    def rpop(self, name: str) -> PipelinePort: ...

    def sadd(self, name: str, *values: str) -> PipelinePort: ...

    def srem(self, name: str, *values: str) -> PipelinePort: ...

    def zadd(self, name: str, mapping: Mapping[str, float]) -> PipelinePort: ...

    def incrby(self, name: str, amount: int = 1) -> PipelinePort: ...

    def hset(
        self, name: str, *, mapping: Mapping[str, str | int | float]
    ) -> PipelinePort: ...

    def delete(self, *names: str) -> PipelinePort: ...

    def expire(self, name: str, time: int) -> PipelinePort: ...

    def exists(self, *names: str) -> PipelinePort: ...

    async def execute(self) -> list[Any]:
        """
        Send every buffered command.

        Raises
        ------
        StoreUnavailableError  if the backend is unreachable
        StoreError             for any other failure
        """
        ...


@runtime_checkable
class QueueStorePort(Protocol):
    """
    Minimal interface required by jworker core.

    Implementing adapters (built-in):
      - InMemoryStore — asyncio.Condition-based, for tests and development
      - RedisStore    — redis.asyncio client (pip install "jworker[redis]")
    """

    async def brpop(
        self, keys: Sequence[str], timeout: float
    ) -> tuple[str, str] | None:
        """
        Pop from the tail of the first non-empty list in `keys`.

        Blocks up to `timeout` seconds (0 blocks forever).

        Returns
        -------
        (key, value) or None when the timeout expired.
        """
        ...

    def pipeline(self, transaction: bool = True) -> PipelinePort:
        """Start a write batch; transaction=True applies it atomically."""
        ...

    async def get(self, name: str) -> str | None: ...

    async def llen(self, name: str) -> int: ...

    async def lrange(self, name: str, start: int, end: int) -> list[str]: ...

    async def smembers(self, name: str) -> set[str]: ...

    async def zcard(self, name: str) -> int: ...

    async def zrangebyscore(
        self,
        name: str,
        min: float | str,
        max: float | str,
        start: int | None = None,
        num: int | None = None,
    ) -> list[str]: ...

    async def zrem(self, name: str, *values: str) -> int: ...

    async def hgetall(self, name: str) -> dict[str, str]: ...

    async def close(self) -> None: ...
