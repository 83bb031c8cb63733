import asyncio
import json
import logging
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from jworker.core.heartbeat import KEY_TTL, Heartbeat
from jworker.core.launcher import Launcher
from jworker.domain.errors import StoreUnavailableError
from jworker.domain.models import ProcessInfo, WorkerState

from conftest import make_options

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _launcher(runtime, received: list[str] | None = None) -> Launcher:
    signals = received if received is not None else []
    return Launcher(make_options(), runtime, signal_handler=signals.append)


def _today() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# beat()
# ---------------------------------------------------------------------------


async def test_beat_flushes_counters(runtime, store):
    launcher = _launcher(runtime)
    runtime.stats.incr_processed(3)
    runtime.stats.incr_failed(1)

    await launcher.heartbeat.beat()

    assert await store.get("stat:processed") == "3"
    assert await store.get(f"stat:processed:{_today()}") == "3"
    assert await store.get("stat:failed") == "1"
    assert await store.get(f"stat:failed:{_today()}") == "1"
    assert runtime.stats.drain() == (0, 0)


async def test_beat_registers_process(runtime, store):
    launcher = _launcher(runtime)

    await launcher.heartbeat.beat()

    assert await store.smembers("processes") == {launcher.identity}
    fields = await store.hgetall(launcher.identity)
    assert ProcessInfo.model_validate_json(fields["info"]) == launcher.to_data()
    assert fields["busy"] == "0"
    assert fields["quiet"] == "false"
    assert float(fields["beat"]) > 0
    assert 0 < await store.ttl(launcher.identity) <= KEY_TTL


async def test_beat_writes_worker_states(runtime, store):
    launcher = _launcher(runtime)
    state = WorkerState(queue="default", payload={"class": "Echo", "jid": "j1"}, started_at=1)
    runtime.stats.worker_state["abc"] = state

    await launcher.heartbeat.beat()

    workers = await store.hgetall(f"{launcher.identity}:workers")
    assert WorkerState.model_validate_json(workers["abc"]) == state
    assert (await store.hgetall(launcher.identity))["busy"] == "1"
    assert 0 < await store.ttl(f"{launcher.identity}:workers") <= KEY_TTL


async def test_beat_replaces_stale_worker_states(runtime, store):
    launcher = _launcher(runtime)
    runtime.stats.worker_state["old"] = WorkerState(queue="q", payload={}, started_at=1)
    await launcher.heartbeat.beat()

    runtime.stats.worker_state.clear()
    await launcher.heartbeat.beat()

    assert await store.hgetall(f"{launcher.identity}:workers") == {}


async def test_beat_reports_quiet(runtime, store):
    launcher = _launcher(runtime)
    await launcher.quiet()

    await launcher.heartbeat.beat()

    assert (await store.hgetall(launcher.identity))["quiet"] == "true"


async def test_heartbeat_event_fires_when_process_key_is_new(runtime):
    fired = []
    runtime.on("heartbeat", lambda: fired.append(1))
    launcher = _launcher(runtime)

    await launcher.heartbeat.beat()
    await launcher.heartbeat.beat()

    assert fired == [1]


async def test_beat_relays_signal(runtime, store):
    received: list[str] = []
    launcher = _launcher(runtime, received)
    key = f"{launcher.identity}-signals"
    await store.pipeline().lpush(key, "TSTP").lpush(key, "TERM").execute()

    await launcher.heartbeat.beat()
    assert received == ["TSTP"]

    await launcher.heartbeat.beat()
    assert received == ["TSTP", "TERM"]


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


def _failing_store() -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(side_effect=StoreUnavailableError("down", OSError("refused")))
    store = MagicMock()
    store.pipeline.return_value = pipe
    return store


async def test_failed_beat_restores_counters(runtime):
    runtime.store = _failing_store()
    launcher = _launcher(runtime)
    runtime.stats.incr_processed(5)
    runtime.stats.incr_failed(2)

    await launcher.heartbeat.beat()

    assert runtime.stats.drain() == (5, 2)


async def test_outage_logged_once_and_recovery_logged(runtime, store, caplog):
    launcher = _launcher(runtime)
    runtime.store = _failing_store()

    with caplog.at_level(logging.INFO, logger="jworker.core.heartbeat"):
        await launcher.heartbeat.beat()
        await launcher.heartbeat.beat()
        runtime.store = store
        await launcher.heartbeat.beat()

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "store is reachable again" in caplog.text


# ---------------------------------------------------------------------------
# Background loop
# ---------------------------------------------------------------------------


async def test_start_beats_until_stopped(runtime, store):
    launcher = _launcher(runtime)
    heartbeat = Heartbeat(launcher, interval=0.01)

    heartbeat.start()
    for _ in range(100):
        if await store.smembers("processes"):
            break
        await asyncio.sleep(0.01)
    await heartbeat.stop()

    assert await store.smembers("processes") == {launcher.identity}
    assert heartbeat._task is None


async def test_loop_survives_failing_signal_handler(runtime, store, caplog):
    received: list[str] = []

    def handler(name: str) -> None:
        received.append(name)
        raise RuntimeError("handler broke")

    launcher = Launcher(make_options(), runtime, signal_handler=handler)
    key = f"{launcher.identity}-signals"
    await store.pipeline().lpush(key, "TSTP").lpush(key, "TERM").execute()
    heartbeat = Heartbeat(launcher, interval=0.01)

    with caplog.at_level(logging.ERROR, logger="jworker.core.heartbeat"):
        heartbeat.start()
        for _ in range(100):
            if len(received) == 2:
                break
            await asyncio.sleep(0.01)
        await heartbeat.stop()

    assert received == ["TSTP", "TERM"]
    assert "beat failed" in caplog.text


async def test_info_is_valid_json(runtime, store):
    launcher = _launcher(runtime)
    await launcher.heartbeat.beat()
    info = json.loads((await store.hgetall(launcher.identity))["info"])
    assert info["identity"] == launcher.identity
    assert info["concurrency"] == 2
