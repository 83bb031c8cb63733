"""
Command-line entry point.

    jworker worker --app myapp.jobs:registry -c 10 -q critical,2 -q default
    jworker enqueue Echo '[1, 2, 3]' -q default --in 60
    jworker stats

Worker signals: SIGINT / SIGTERM stop the process (busy jobs get
`--timeout` seconds to finish); SIGTSTP / SIGUSR1 quiet it.
"""

import asyncio
import contextlib
import importlib
import json
import logging
import signal
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from jworker.adapters.store.redis import RedisStore
from jworker.config import Options
from jworker.core.api import ProcessSet, Statistics
from jworker.core.job import HandlerRegistry
from jworker.core.launcher import Launcher
from jworker.core.runtime import Runtime
from jworker.log import setup_logging
from jworker.ports.store import QueueStorePort

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="jworker — background job processing",
    add_completion=False,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_store(redis_url: str) -> QueueStorePort:
    return RedisStore(url=redis_url)


def parse_queues(specs: list[str]) -> tuple[list[str], bool]:
    """
    Expand "name[,weight]" specs into the polling list.

    A queue with weight N appears N times. Returns (queues, strict): strict
    ordering is used only when no spec carries a weight.
    """
    queues: list[str] = []
    weighted = False
    for spec in specs:
        name, _, weight = spec.partition(",")
        if not name:
            raise typer.BadParameter(f"Empty queue name in {spec!r}")
        if weight:
            weighted = True
            try:
                count = int(weight)
            except ValueError:
                raise typer.BadParameter(f"Queue weight must be an integer: {spec!r}") from None
            if count < 1:
                raise typer.BadParameter(f"Queue weight must be positive: {spec!r}")
        else:
            count = 1
        queues.extend([name] * count)
    return queues, not weighted


def load_registry(path: str) -> HandlerRegistry:
    """Import "package.module[:attribute]" (attribute defaults to `registry`)."""
    module_name, _, attribute = path.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"Cannot import {module_name!r}: {exc}") from exc
    registry = getattr(module, attribute or "registry", None)
    if not isinstance(registry, HandlerRegistry):
        raise typer.BadParameter(f"{path!r} is not a HandlerRegistry")
    return registry


def _build_options(**overrides: Any) -> Options:
    return Options(**{k: v for k, v in overrides.items() if v is not None})


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def worker(
    app_path: str = typer.Option(
        ...,
        "--app",
        "-a",
        help="module:attribute of the HandlerRegistry",
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", help="Number of processors"
    ),
    queue: Optional[List[str]] = typer.Option(
        None, "--queue", "-q", help="Queue to process, optionally name,weight"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Shutdown timeout in seconds"
    ),
    tag: Optional[str] = typer.Option(None, "--tag", "-g", help="Process label"),
    redis_url: Optional[str] = typer.Option(None, "--redis-url"),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
) -> None:
    """Run a worker process until SIGINT or SIGTERM."""
    queues, strict = parse_queues(queue) if queue else (None, None)
    options = _build_options(
        concurrency=concurrency,
        queues=queues,
        strict=strict,
        timeout=timeout,
        tag=tag,
        redis_url=redis_url,
        log_level=log_level.upper() if log_level else None,
    )
    registry = load_registry(app_path)
    setup_logging(options.log_level)
    asyncio.run(_run_worker(options, registry))


@app.command()
def enqueue(
    job_class: str = typer.Argument(..., help="Registered handler name"),
    args: str = typer.Argument("[]", help="JSON list of arguments"),
    queue: str = typer.Option("default", "--queue", "-q"),
    delay: Optional[float] = typer.Option(
        None, "--in", help="Seconds to delay execution"
    ),
    redis_url: Optional[str] = typer.Option(None, "--redis-url"),
) -> None:
    """Push one job and print its jid."""
    try:
        parsed = json.loads(args)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"ARGS is not valid JSON: {exc}") from exc
    if not isinstance(parsed, list):
        raise typer.BadParameter("ARGS must be a JSON list")

    options = _build_options(redis_url=redis_url)
    item: dict[str, Any] = {"class": job_class, "args": parsed, "queue": queue}
    jid = asyncio.run(_push(options, item, delay))
    typer.echo(jid if jid else "Job was dropped by client middleware")


@app.command()
def stats(
    redis_url: Optional[str] = typer.Option(None, "--redis-url"),
) -> None:
    """Print cumulative counters, queue sizes and live processes."""
    options = _build_options(redis_url=redis_url)
    snapshot, processes = asyncio.run(_fetch_stats(options))

    console = Console()
    table = Table(title="jworker")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Processed", f"{snapshot.processed:,}")
    table.add_row("Failed", f"{snapshot.failed:,}")
    table.add_row("Enqueued", f"{snapshot.enqueued:,}")
    table.add_row("Scheduled", f"{snapshot.scheduled_size:,}")
    table.add_row("Processes", f"{snapshot.processes_size:,}")
    table.add_row("Busy", f"{snapshot.workers_size:,}")
    for name, size in snapshot.queues.items():
        table.add_row(f"queue:{name}", f"{size:,}")
    console.print(table)

    for process in processes:
        state = "quiet" if process.quiet else "running"
        console.print(
            f"{process.identity} [{process.busy} of {process.info.concurrency} busy] {state}"
        )


# ---------------------------------------------------------------------------
# Async bodies
# ---------------------------------------------------------------------------


async def _run_worker(options: Options, registry: HandlerRegistry) -> None:
    store = make_store(options.redis_url)
    runtime = Runtime(store=store, registry=registry)
    launcher = Launcher(options, runtime)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    quiet_requested = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_requested.set)
    for signum in (signal.SIGTSTP, signal.SIGUSR1):
        loop.add_signal_handler(signum, quiet_requested.set)

    async def _quiet_when_asked() -> None:
        await quiet_requested.wait()
        logger.info("Received quiet signal, no longer accepting new work")
        await launcher.quiet()

    quieter = asyncio.create_task(_quiet_when_asked(), name="jworker-quiet")
    try:
        await launcher.run()
        logger.info(
            "Starting processing with %d processors on %s, hit Ctrl-C to stop",
            options.concurrency,
            ", ".join(dict.fromkeys(options.queues)),
        )
        await stop_requested.wait()
        logger.info("Shutting down")
        await launcher.stop()
        logger.info("Bye!")
    finally:
        quieter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await quieter
        await store.close()


async def _push(options: Options, item: dict[str, Any], delay: float | None) -> str | None:
    store = make_store(options.redis_url)
    try:
        client = Runtime(store=store).client()
        if delay:
            return await client.enqueue_to_in(item["queue"], delay, item["class"], *item["args"])
        return await client.push(item)
    finally:
        await store.close()


async def _fetch_stats(options: Options) -> tuple[Any, list[Any]]:
    store = make_store(options.redis_url)
    try:
        return await Statistics(store).fetch(), await ProcessSet(store).list()
    finally:
        await store.close()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
