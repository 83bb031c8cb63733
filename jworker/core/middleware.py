"""
Middleware Chain — ordered wrappers around job execution and enqueueing.

A Chain stores (class, constructor args) entries, never live instances.
invoke() builds a fresh instance of every entry, then calls them in order;
each one receives the invocation arguments plus `call_next`, an async
callable that runs the rest of the chain and finally the terminal action.

Server middleware (around job execution in a Processor):

    class LogTiming:
        async def __call__(self, worker, job, queue, call_next):
            started = time.monotonic()
            try:
                return await call_next()
            finally:
                logger.info("%s took %.3fs", job["class"], time.monotonic() - started)

Client middleware (around Client.push) must return the job — usually the
result of `await call_next()` — or None to stop the push:

    class DropOnWeekends:
        async def __call__(self, job_class, job, queue, store, call_next):
            if datetime.date.today().weekday() >= 5:
                return None
            return await call_next()

Entries are configured before workers start. invoke() copies the entry list
up front, so concurrent invocations never observe a half-mutated chain.
"""
from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Protocol

Next = Callable[[], Awaitable[Any]]


class Middleware(Protocol):
    """Structural Protocol — any callable taking the chain arguments plus call_next."""

    def __call__(self, *args: Any) -> Any: ...


@dataclasses.dataclass
class Entry:
    """A middleware class with the arguments used to construct it per invocation."""

    klass: Callable[..., Middleware]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = dataclasses.field(default_factory=dict)

    def make_new(self) -> Middleware:
        return self.klass(*self.args, **self.kwargs)


class Chain:
    """
    Mutable ordered list of middleware entries.

    Adding a class that is already present moves it rather than duplicating
    it, so each class appears at most once.
    """

    def __init__(self, entries: list[Entry] | None = None) -> None:
        self.entries: list[Entry] = list(entries or [])

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, klass: object) -> bool:
        return self.exists(klass)

    def copy(self) -> Chain:
        return Chain(self.entries)

    # ------------------------------------------------------------------ #
    # Configuration                                                        #
    # ------------------------------------------------------------------ #

    def remove(self, klass: object) -> None:
        self.entries = [e for e in self.entries if e.klass is not klass]

    def add(self, klass: Callable[..., Middleware], *args: Any, **kwargs: Any) -> None:
        """Append `klass`, moving it to the end if it is already present."""
        self.remove(klass)
        self.entries.append(Entry(klass, args, kwargs))

    def prepend(self, klass: Callable[..., Middleware], *args: Any, **kwargs: Any) -> None:
        """Insert `klass` first, moving it to the front if it is already present."""
        self.remove(klass)
        self.entries.insert(0, Entry(klass, args, kwargs))

    def insert_before(
        self,
        old: object,
        klass: Callable[..., Middleware],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Place `klass` right before `old`, or first when `old` is absent."""
        entry = self._take(klass) or Entry(klass, args, kwargs)
        i = self._index(old)
        self.entries.insert(0 if i is None else i, entry)

    def insert_after(
        self,
        old: object,
        klass: Callable[..., Middleware],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Place `klass` right after `old`, or last when `old` is absent."""
        entry = self._take(klass) or Entry(klass, args, kwargs)
        i = self._index(old)
        self.entries.insert(len(self.entries) if i is None else i + 1, entry)

    def exists(self, klass: object) -> bool:
        return self._index(klass) is not None

    def clear(self) -> None:
        self.entries.clear()

    def retrieve(self) -> list[Middleware]:
        """Fresh middleware instances, one per entry."""
        return [entry.make_new() for entry in self.entries]

    # ------------------------------------------------------------------ #
    # Invocation                                                           #
    # ------------------------------------------------------------------ #

    async def invoke(self, *args: Any, terminal: Next) -> Any:
        """
        Run every middleware around `terminal`.

        Returns whatever the outermost middleware returns; when every
        middleware calls through, that is terminal()'s result.
        """
        chain = self.retrieve()

        async def traverse() -> Any:
            if not chain:
                return await terminal()
            middleware = chain.pop(0)
            result = middleware(*args, traverse)
            if inspect.isawaitable(result):
                result = await result
            return result

        return await traverse()

    def _index(self, klass: object) -> int | None:
        return next(
            (i for i, e in enumerate(self.entries) if e.klass is klass), None
        )

    def _take(self, klass: object) -> Entry | None:
        i = self._index(klass)
        return None if i is None else self.entries.pop(i)
