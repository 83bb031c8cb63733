from typing import Any

import pytest

from jworker.adapters.store.memory import InMemoryStore
from jworker.config import Options
from jworker.core.fetch import BasicFetch
from jworker.core.job import HandlerRegistry, Job
from jworker.core.runtime import Runtime


class FastFetch(BasicFetch):
    """BasicFetch with a short BRPOP timeout so idle processors exit quickly."""

    TIMEOUT = 0.05


# ---------------------------------------------------------------------------
# Handlers shared by the processor / manager / launcher tests
# ---------------------------------------------------------------------------

PERFORMED: list[tuple[str | None, tuple[Any, ...]]] = []


class Echo(Job):
    async def perform(self, *args: Any) -> None:
        PERFORMED.append((self.jid, args))


class SyncEcho(Job, queue="sync"):
    def perform(self, *args: Any) -> None:
        PERFORMED.append((self.jid, args))


class Boom(Job):
    async def perform(self, *args: Any) -> None:
        raise RuntimeError("boom")


class Mutator(Job):
    async def perform(self, items: list[Any]) -> None:
        items.append("mutated")
        PERFORMED.append((self.jid, (items,)))


@pytest.fixture(autouse=True)
def _clear_performed() -> None:
    PERFORMED.clear()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def registry() -> HandlerRegistry:
    registry = HandlerRegistry()
    for handler in (Echo, SyncEcho, Boom, Mutator):
        registry.register(handler)
    return registry


@pytest.fixture
def runtime(store: InMemoryStore, registry: HandlerRegistry) -> Runtime:
    return Runtime(store=store, registry=registry)


def make_options(**overrides: Any) -> Options:
    settings: dict[str, Any] = {
        "concurrency": 2,
        "queues": ["default"],
        "timeout": 1.0,
        "fetch": FastFetch,
        "poll_interval": 0.05,
        "heartbeat_interval": 0.05,
    }
    settings.update(overrides)
    return Options(**settings)
