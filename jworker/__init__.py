"""
jworker — background job processing over a Redis-style queue store.

Producers push JSON job descriptors onto named queues. A worker process runs
a pool of Processors that pop jobs, run them through a middleware chain and
call the registered handler's perform(). A Manager keeps the pool at the
configured size and shuts it down within a deadline; a Launcher supervises
the Manager, the scheduled-job Poller and the Heartbeat.

Delivery is at-least-once: a job still running when the shutdown deadline
passes is pushed back to its queue before its Processor is killed.

Quick start
-----------
    import asyncio
    from jworker import Client, HandlerRegistry, Job, Launcher, Options, Runtime
    from jworker.adapters.store.memory import InMemoryStore

    registry = HandlerRegistry()

    @registry.register
    class Echo(Job, queue="default"):
        async def perform(self, *args):
            print(f"{self.jid}: {args}")

    async def main():
        runtime = Runtime(store=InMemoryStore(), registry=registry)
        await runtime.client().enqueue(Echo, 1, 2, 3)

        launcher = Launcher(Options(concurrency=5), runtime)
        await launcher.run()
        await asyncio.sleep(1)
        await launcher.stop()

    asyncio.run(main())

Store adapters
--------------
Built-in adapters:
  - InMemoryStore  — for tests and examples (no extra deps)
  - RedisStore     — redis.asyncio (pip install "jworker[redis]")

Custom adapters implement the QueueStorePort Protocol: brpop(), pipeline()
and a handful of read commands.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (JobDescriptor, WorkerState, ProcessInfo, errors)
  ports/    — Protocol interfaces (QueueStorePort, PipelinePort)
  core/     — Client, fetch, middleware, Processor, Manager, Launcher, Poller
  adapters/ — concrete store implementations
"""
from __future__ import annotations

from jworker.adapters.store.memory import InMemoryStore
from jworker.config import Options
from jworker.core.client import Client
from jworker.core.fetch import BasicFetch, FetchStrategy, UnitOfWork
from jworker.core.job import HandlerRegistry, Job
from jworker.core.launcher import Launcher
from jworker.core.manager import Manager
from jworker.core.middleware import Chain
from jworker.core.processor import Processor
from jworker.core.runtime import Runtime, Stats
from jworker.domain.errors import (
    ConfigurationError,
    InvalidJobError,
    JWorkerError,
    StoreError,
    StoreUnavailableError,
    UnknownHandlerError,
)
from jworker.domain.models import JobDescriptor, ProcessInfo, WorkerState
from jworker.ports.store import PipelinePort, QueueStorePort

__all__ = [
    # Domain models
    "JobDescriptor",
    "ProcessInfo",
    "WorkerState",
    # Errors
    "JWorkerError",
    "StoreError",
    "StoreUnavailableError",
    "InvalidJobError",
    "UnknownHandlerError",
    "ConfigurationError",
    # Ports (for typing custom adapters)
    "QueueStorePort",
    "PipelinePort",
    # Configuration and shared state
    "Options",
    "Runtime",
    "Stats",
    # Producer API
    "Client",
    "Job",
    "HandlerRegistry",
    # Worker side
    "BasicFetch",
    "FetchStrategy",
    "UnitOfWork",
    "Chain",
    "Processor",
    "Manager",
    "Launcher",
    # Built-in store adapters
    "InMemoryStore",
]
