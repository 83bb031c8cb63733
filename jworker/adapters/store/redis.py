"""
RedisStore — Redis adapter using redis.asyncio.

Install extras: pip install "jworker[redis]"

The port is a subset of the Redis command set, so every method is a thin
delegation to redis.asyncio.Redis created with decode_responses=True. The
adapter's only job is failure translation:

  redis ConnectionError / TimeoutError, OSError  → StoreUnavailableError
  any other exception                            → StoreError

Pipelines are created with the requested transaction flag, so
pipeline(transaction=True) is sent as MULTI ... EXEC in one round trip.
"""
from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from jworker.domain.errors import StoreError, StoreUnavailableError

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline


@dataclasses.dataclass
class RedisStore:
    """
    Redis queue store.

    Parameters
    ----------
    url    : redis:// or rediss:// URL used when `client` is omitted
    client : redis.asyncio.Redis — created lazily from `url` if omitted
    """

    url: str = "redis://localhost:6379/0"
    client: Redis | None = None

    def _get_client(self) -> Redis:
        if self.client is not None:
            return self.client
        try:
            import redis.asyncio
        except ImportError as exc:
            raise ImportError(
                "RedisStore requires redis. Install with: pip install 'jworker[redis]'"
            ) from exc
        self.client = redis.asyncio.Redis.from_url(self.url, decode_responses=True)
        return self.client

    async def brpop(
        self, keys: Sequence[str], timeout: float
    ) -> tuple[str, str] | None:
        """BRPOP; returns (key, value) or None on timeout."""
        try:
            result = await self._get_client().brpop(list(keys), timeout=timeout)
        except Exception as exc:
            raise _translate("Redis BRPOP failed", exc) from exc
        if not result:
            return None
        key, value = result
        return key, value

    def pipeline(self, transaction: bool = True) -> _RedisPipeline:
        return _RedisPipeline(self._get_client().pipeline(transaction=transaction))

    async def get(self, name: str) -> str | None:
        return await self._call("get", name)

    async def llen(self, name: str) -> int:
        return int(await self._call("llen", name))

    async def lrange(self, name: str, start: int, end: int) -> list[str]:
        return list(await self._call("lrange", name, start, end))

    async def smembers(self, name: str) -> set[str]:
        return set(await self._call("smembers", name))

    async def zcard(self, name: str) -> int:
        return int(await self._call("zcard", name))

    async def zrangebyscore(
        self,
        name: str,
        min: float | str,
        max: float | str,
        start: int | None = None,
        num: int | None = None,
    ) -> list[str]:
        return list(
            await self._call("zrangebyscore", name, min, max, start=start, num=num)
        )

    async def zrem(self, name: str, *values: str) -> int:
        return int(await self._call("zrem", name, *values))

    async def hgetall(self, name: str) -> dict[str, str]:
        return dict(await self._call("hgetall", name))

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._get_client(), command)(*args, **kwargs)
        except Exception as exc:
            raise _translate(f"Redis {command.upper()} failed", exc) from exc


class _RedisPipeline:
    """Delegates to a redis.asyncio Pipeline and translates execute() failures."""

    def __init__(self, pipe: Pipeline) -> None:
        self._pipe = pipe

    def lpush(self, name: str, *values: str) -> _RedisPipeline:
        self._pipe.lpush(name, *values)
        return self

    def rpush(self, name: str, *values: str) -> _RedisPipeline:
        self._pipe.rpush(name, *values)
        return self

    def rpop(self, name: str) -> _RedisPipeline:
        self._pipe.rpop(name)
        return self

    def sadd(self, name: str, *values: str) -> _RedisPipeline:
        self._pipe.sadd(name, *values)
        return self

    def srem(self, name: str, *values: str) -> _RedisPipeline:
        self._pipe.srem(name, *values)
        return self

    def zadd(self, name: str, mapping: Mapping[str, float]) -> _RedisPipeline:
        self._pipe.zadd(name, dict(mapping))
        return self

    def incrby(self, name: str, amount: int = 1) -> _RedisPipeline:
        self._pipe.incrby(name, amount)
        return self

    def hset(self, name: str, *, mapping: Mapping[str, Any]) -> _RedisPipeline:
        self._pipe.hset(name, mapping=dict(mapping))
        return self

    def delete(self, *names: str) -> _RedisPipeline:
        self._pipe.delete(*names)
        return self

    def expire(self, name: str, time: int) -> _RedisPipeline:
        self._pipe.expire(name, time)
        return self

    def exists(self, *names: str) -> _RedisPipeline:
        self._pipe.exists(*names)
        return self

    async def execute(self) -> list[Any]:
        try:
            return list(await self._pipe.execute())
        except Exception as exc:
            raise _translate("Redis pipeline failed", exc) from exc
        finally:
            await self._pipe.reset()


def _translate(message: str, exc: Exception) -> StoreError:
    """Map a redis-py exception onto the jworker store error hierarchy."""
    from redis.exceptions import ConnectionError as RedisConnectionError
    from redis.exceptions import TimeoutError as RedisTimeoutError

    if isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError)):
        return StoreUnavailableError(message, exc)
    return StoreError(message, exc)
