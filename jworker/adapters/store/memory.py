"""
InMemoryStore — asyncio.Condition-based queue store for tests and development.

Keeps lists, sets, sorted sets, hashes and counters in plain dicts. A single
asyncio.Condition serializes every command, so a pipeline is applied
atomically and wakes any coroutine blocked in brpop().

Key expiry is recorded on expire() and enforced lazily whenever a key is
touched, which is enough to observe TTL behaviour in tests.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import dataclasses
import time
from collections import deque
from collections.abc import Mapping, Sequence
from typing import Any


@dataclasses.dataclass
class InMemoryStore:
    """In-process queue store mirroring the Redis command semantics jworker uses."""

    def __post_init__(self) -> None:
        self._lists: dict[str, deque[str]] = {}
        self._sets: dict[str, set[str]] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._strings: dict[str, str] = {}
        self._expires: dict[str, float] = {}
        self._cond: asyncio.Condition = asyncio.Condition()

    # ------------------------------------------------------------------ #
    # Port API                                                             #
    # ------------------------------------------------------------------ #

    async def brpop(
        self, keys: Sequence[str], timeout: float
    ) -> tuple[str, str] | None:
        """Pop the tail of the first non-empty list, waiting up to `timeout`."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        async with self._cond:
            while True:
                for key in keys:
                    value = self._cmd_rpop(key)
                    if value is not None:
                        return key, value
                if deadline is None:
                    await self._cond.wait()
                    continue
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                try:
                    await asyncio.wait_for(self._cond.wait(), remaining)
                except TimeoutError:
                    return None

    def pipeline(self, transaction: bool = True) -> _MemoryPipeline:
        """Every pipeline is atomic here; `transaction` is accepted for parity."""
        return _MemoryPipeline(self)

    async def get(self, name: str) -> str | None:
        async with self._cond:
            self._purge(name)
            return self._strings.get(name)

    async def llen(self, name: str) -> int:
        async with self._cond:
            self._purge(name)
            return len(self._lists.get(name, ()))

    async def lrange(self, name: str, start: int, end: int) -> list[str]:
        async with self._cond:
            self._purge(name)
            items = list(self._lists.get(name, ()))
        stop = None if end == -1 else end + 1
        return items[start:stop]

    async def smembers(self, name: str) -> set[str]:
        async with self._cond:
            self._purge(name)
            return set(self._sets.get(name, ()))

    async def zcard(self, name: str) -> int:
        async with self._cond:
            self._purge(name)
            return len(self._zsets.get(name, {}))

    async def zrangebyscore(
        self,
        name: str,
        min: float | str,
        max: float | str,
        start: int | None = None,
        num: int | None = None,
    ) -> list[str]:
        lo, hi = float(min), float(max)
        async with self._cond:
            self._purge(name)
            entries = sorted(
                self._zsets.get(name, {}).items(), key=lambda kv: (kv[1], kv[0])
            )
        members = [member for member, score in entries if lo <= score <= hi]
        if start is not None and num is not None:
            members = members[start : start + num]
        return members

    async def zrem(self, name: str, *values: str) -> int:
        async with self._cond:
            self._purge(name)
            zset = self._zsets.get(name, {})
            removed = sum(1 for v in values if zset.pop(v, None) is not None)
            if not zset:
                self._zsets.pop(name, None)
            return removed

    async def hgetall(self, name: str) -> dict[str, str]:
        async with self._cond:
            self._purge(name)
            return dict(self._hashes.get(name, {}))

    async def ttl(self, name: str) -> float:
        """Seconds until `name` expires; -1 without expiry, -2 if absent."""
        async with self._cond:
            self._purge(name)
            if not self._cmd_exists(name):
                return -2
            if name not in self._expires:
                return -1
            return self._expires[name] - time.monotonic()

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------ #
    # Pipeline application                                                 #
    # ------------------------------------------------------------------ #

    async def _apply(
        self, commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]]
    ) -> list[Any]:
        async with self._cond:
            results = [
                getattr(self, f"_cmd_{name}")(*args, **kwargs)
                for name, args, kwargs in commands
            ]
            self._cond.notify_all()
            return results

    # ------------------------------------------------------------------ #
    # Commands (caller holds the condition)                               #
    # ------------------------------------------------------------------ #

    def _purge(self, name: str) -> None:
        expires_at = self._expires.get(name)
        if expires_at is not None and expires_at <= time.monotonic():
            self._cmd_delete(name)

    def _cmd_lpush(self, name: str, *values: str) -> int:
        self._purge(name)
        items = self._lists.setdefault(name, deque())
        items.extendleft(values)
        return len(items)

    def _cmd_rpush(self, name: str, *values: str) -> int:
        self._purge(name)
        items = self._lists.setdefault(name, deque())
        items.extend(values)
        return len(items)

    def _cmd_rpop(self, name: str) -> str | None:
        self._purge(name)
        items = self._lists.get(name)
        if not items:
            return None
        value = items.pop()
        if not items:
            del self._lists[name]
        return value

    def _cmd_sadd(self, name: str, *values: str) -> int:
        self._purge(name)
        members = self._sets.setdefault(name, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    def _cmd_srem(self, name: str, *values: str) -> int:
        self._purge(name)
        members = self._sets.get(name, set())
        removed = len(members & set(values))
        members.difference_update(values)
        if not members:
            self._sets.pop(name, None)
        return removed

    def _cmd_zadd(self, name: str, mapping: Mapping[str, float]) -> int:
        self._purge(name)
        zset = self._zsets.setdefault(name, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    def _cmd_incrby(self, name: str, amount: int = 1) -> int:
        self._purge(name)
        value = int(self._strings.get(name, "0")) + amount
        self._strings[name] = str(value)
        return value

    def _cmd_hset(self, name: str, *, mapping: Mapping[str, Any]) -> int:
        self._purge(name)
        fields = self._hashes.setdefault(name, {})
        added = sum(1 for field in mapping if field not in fields)
        fields.update({field: str(value) for field, value in mapping.items()})
        return added

    def _cmd_delete(self, *names: str) -> int:
        deleted = 0
        for name in names:
            self._expires.pop(name, None)
            for space in (
                self._lists,
                self._sets,
                self._zsets,
                self._hashes,
                self._strings,
            ):
                if space.pop(name, None) is not None:
                    deleted += 1
        return deleted

    def _cmd_expire(self, name: str, time_: int) -> bool:
        self._purge(name)
        if not self._cmd_exists(name):
            return False
        self._expires[name] = time.monotonic() + time_
        return True

    def _cmd_exists(self, *names: str) -> int:
        count = 0
        for name in names:
            self._purge(name)
            if any(
                name in space
                for space in (
                    self._lists,
                    self._sets,
                    self._zsets,
                    self._hashes,
                    self._strings,
                )
            ):
                count += 1
        return count


class _MemoryPipeline:
    """Buffers commands until execute() applies them under the store's condition."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._commands: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def _add(self, name: str, *args: Any, **kwargs: Any) -> _MemoryPipeline:
        self._commands.append((name, args, kwargs))
        return self

    def lpush(self, name: str, *values: str) -> _MemoryPipeline:
        return self._add("lpush", name, *values)

    def rpush(self, name: str, *values: str) -> _MemoryPipeline:
        return self._add("rpush", name, *values)

    def rpop(self, name: str) -> _MemoryPipeline:
        return self._add("rpop", name)

    def sadd(self, name: str, *values: str) -> _MemoryPipeline:
        return self._add("sadd", name, *values)

    def srem(self, name: str, *values: str) -> _MemoryPipeline:
        return self._add("srem", name, *values)

    def zadd(self, name: str, mapping: Mapping[str, float]) -> _MemoryPipeline:
        return self._add("zadd", name, dict(mapping))

    def incrby(self, name: str, amount: int = 1) -> _MemoryPipeline:
        return self._add("incrby", name, amount)

    def hset(self, name: str, *, mapping: Mapping[str, Any]) -> _MemoryPipeline:
        return self._add("hset", name, mapping=dict(mapping))

    def delete(self, *names: str) -> _MemoryPipeline:
        return self._add("delete", *names)

    def expire(self, name: str, time: int) -> _MemoryPipeline:
        return self._add("expire", name, time)

    def exists(self, *names: str) -> _MemoryPipeline:
        return self._add("exists", *names)

    async def execute(self) -> list[Any]:
        commands, self._commands = self._commands, []
        return await self._store._apply(commands)
