import asyncio
import json
import logging
import time
from unittest.mock import AsyncMock

from jworker.core.client import Client
from jworker.core.scheduled import Enq, Poller

from conftest import make_options

# ---------------------------------------------------------------------------
# Enq
# ---------------------------------------------------------------------------


async def test_enqueue_jobs_moves_only_due_entries(store):
    client = Client(store)
    now = time.time()
    await client.push({"class": "Echo", "args": ["due"], "at": now + 10, "jid": "due"})
    await client.push({"class": "Echo", "args": ["later"], "at": now + 100, "jid": "later"})

    pushed = await Enq(store, client).enqueue_jobs(now=now + 20)

    assert pushed == 1
    [raw] = await store.lrange("queue:default", 0, -1)
    job = json.loads(raw)
    assert job["jid"] == "due"
    assert "enqueued_at" in job
    assert await store.zcard("schedule") == 1


async def test_enqueue_jobs_drains_in_score_order(store):
    client = Client(store)
    now = time.time()
    for offset in (30, 10, 20):
        await client.push({"class": "Echo", "args": [offset], "at": now + offset})

    assert await Enq(store, client).enqueue_jobs(now=now + 60) == 3

    queued = [json.loads(raw)["args"][0] for raw in await store.lrange("queue:default", 0, -1)]
    # LPUSH puts the newest first; the consumer pops from the right.
    assert queued == [30, 20, 10]
    assert await store.zcard("schedule") == 0


async def test_enqueue_jobs_respects_job_queue(store):
    client = Client(store)
    await client.enqueue_to_in("low", 5, "Echo")

    await Enq(store, client).enqueue_jobs(now=time.time() + 10)

    assert await store.llen("queue:low") == 1
    assert await store.smembers("queues") == {"low"}


async def test_entry_taken_by_another_process_is_skipped(store):
    client = Client(store)
    await client.push({"class": "Echo", "args": [], "at": time.time() + 5})
    store.zrem = AsyncMock(return_value=0)
    store.zrangebyscore = AsyncMock(side_effect=[["{}"], []])

    assert await Enq(store, client).enqueue_jobs(now=time.time() + 10) == 0
    assert await store.llen("queue:default") == 0


async def test_nothing_due(store):
    assert await Enq(store, Client(store)).enqueue_jobs() == 0


# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------


async def test_poller_promotes_due_jobs(runtime, store):
    poller = Poller(make_options(poll_interval=0.01), runtime)
    await runtime.client().enqueue_in(0.02, "Echo", 1)

    poller.start()
    for _ in range(100):
        if await store.llen("queue:default"):
            break
        await asyncio.sleep(0.01)
    await poller.terminate()

    assert await store.llen("queue:default") == 1
    assert await store.zcard("schedule") == 0


async def test_poller_survives_errors(runtime, caplog):
    poller = Poller(make_options(poll_interval=0.01), runtime)
    poller.enq.enqueue_jobs = AsyncMock(side_effect=[RuntimeError("bad entry"), 0, 0, 0])

    with caplog.at_level(logging.ERROR, logger="jworker.core.scheduled"):
        await poller.enqueue()
        await poller.enqueue()

    assert "Error enqueueing scheduled jobs" in caplog.text
    assert poller.enq.enqueue_jobs.await_count == 2


async def test_terminate_wakes_sleeping_poller(runtime):
    poller = Poller(make_options(poll_interval=60), runtime)
    poller.start()
    await asyncio.sleep(0.01)

    await asyncio.wait_for(poller.terminate(), 1)


async def test_terminate_without_start(runtime):
    await Poller(make_options(), runtime).terminate()
