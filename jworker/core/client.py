"""
Client — the producer side of jworker.

    client = Client(store)
    jid = await client.push({"class": "Echo", "args": [1, 2, 3]})
    jids = await client.push_bulk({"class": "Echo", "args": [[1], [2], [3]]})
    await client.enqueue_in(300, Echo, "later")

Every job is normalised (validated, defaults merged, jid assigned) and then
run through the client middleware chain. A middleware that returns None
drops the job. Everything that survives is written in one MULTI/EXEC
pipeline: live jobs with SADD queues + LPUSH queue:<name>, scheduled jobs
with ZADD schedule scored by their `at` timestamp.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from jworker.core import codec
from jworker.core.job import DEFAULT_JOB_OPTIONS, Job
from jworker.core.middleware import Chain
from jworker.domain.errors import InvalidJobError
from jworker.domain.models import JobDescriptor, new_jid
from jworker.ports.store import QueueStorePort

logger = logging.getLogger(__name__)

# Intervals below this are relative seconds, anything above is an epoch timestamp
_ABSOLUTE_THRESHOLD = 1_000_000_000


@dataclasses.dataclass
class Client:
    """
    Pushes jobs to a QueueStorePort.

    Parameters
    ----------
    store      : the queue store to write to
    middleware : client middleware chain (copied, so later edits to the
                 caller's chain do not affect this client)
    """

    store: QueueStorePort
    middleware: Chain = dataclasses.field(default_factory=Chain)

    def __post_init__(self) -> None:
        self.middleware = self.middleware.copy()

    # ------------------------------------------------------------------ #
    # Push API                                                             #
    # ------------------------------------------------------------------ #

    async def push(self, item: Mapping[str, Any]) -> str | None:
        """
        Push one job. Returns its jid, or None if middleware dropped it.

        Raises InvalidJobError for malformed descriptors.
        """
        normed = self._normalize_item(item)
        payload = await self._process_single(item["class"], normed)
        if payload is None:
            return None
        await self._raw_push([payload])
        return payload["jid"]

    async def push_bulk(self, items: Mapping[str, Any]) -> list[str]:
        """
        Push many jobs of the same class in one round trip.

        `items["args"]` is a list of argument lists, one per job. Every other
        key is copied to each job; each job gets its own jid and its own pass
        through the client middleware. Returns the jids that were pushed.
        """
        if not isinstance(items, Mapping) or "args" not in items:
            raise InvalidJobError("Bulk job must be a mapping with an 'args' key")
        all_args = items["args"]
        if not isinstance(all_args, (list, tuple)) or not all(
            isinstance(a, (list, tuple)) for a in all_args
        ):
            raise InvalidJobError(
                "Bulk arguments must be a list of lists: [[1], [2]]"
            )
        if not all_args:
            return []

        normed = self._normalize_item({**items, "args": list(all_args[0])})
        payloads: list[dict[str, Any]] = []
        for args in all_args:
            copy = {
                **normed,
                "args": list(args),
                "jid": new_jid(),
            }
            _check_serializable(copy)
            result = await self._process_single(items["class"], copy)
            if result is not None:
                payloads.append(result)

        if payloads:
            await self._raw_push(payloads)
        return [payload["jid"] for payload in payloads]

    # ------------------------------------------------------------------ #
    # Convenience producers                                                #
    # ------------------------------------------------------------------ #

    async def enqueue(self, job_class: type[Job] | str, *args: Any) -> str | None:
        """Push `job_class` with `args` to its configured queue."""
        return await self.push({"class": job_class, "args": list(args)})

    async def enqueue_to(
        self, queue: str, job_class: type[Job] | str, *args: Any
    ) -> str | None:
        return await self.push({"queue": queue, "class": job_class, "args": list(args)})

    async def enqueue_in(
        self, interval: float, job_class: type[Job] | str, *args: Any
    ) -> str | None:
        """Schedule `job_class` to run `interval` seconds from now (or at an epoch time)."""
        return await self.push(
            {"class": job_class, "args": list(args), "at": _resolve_at(interval)}
        )

    async def enqueue_to_in(
        self, queue: str, interval: float, job_class: type[Job] | str, *args: Any
    ) -> str | None:
        return await self.push(
            {
                "queue": queue,
                "class": job_class,
                "args": list(args),
                "at": _resolve_at(interval),
            }
        )

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    async def _process_single(
        self, job_class: Any, item: dict[str, Any]
    ) -> dict[str, Any] | None:
        async def _terminal() -> dict[str, Any]:
            return item

        return await self.middleware.invoke(
            job_class, item, item["queue"], self.store, terminal=_terminal
        )

    async def _raw_push(self, payloads: list[dict[str, Any]]) -> None:
        pipe = self.store.pipeline(transaction=True)
        if payloads[0].get("at") is not None:
            scheduled: dict[str, float] = {}
            for payload in payloads:
                job = dict(payload)
                at = float(job.pop("at"))
                scheduled[codec.dump_json(job)] = at
            pipe.zadd("schedule", scheduled)
        else:
            queue = payloads[0]["queue"]
            now = time.time()
            to_push = []
            for payload in payloads:
                payload["enqueued_at"] = now
                to_push.append(codec.dump_json(payload))
            pipe.sadd("queues", queue)
            pipe.lpush(f"queue:{queue}", *to_push)
        await pipe.execute()
        logger.debug("Pushed %d job(s)", len(payloads))

    def _normalize_item(self, item: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(item, Mapping) or "class" not in item or "args" not in item:
            raise InvalidJobError(
                "Job must be a mapping with 'class' and 'args' keys: "
                "{'class': 'SomeJob', 'args': ['bob', 1, {'foo': 'bar'}]}"
            )

        job_class = item["class"]
        if isinstance(job_class, type):
            if not issubclass(job_class, Job):
                raise InvalidJobError(
                    f"Job class must be a Job subclass, not {job_class.__name__}"
                )
            defaults = job_class.get_options()
            job_class = job_class.__name__
        else:
            defaults = dict(DEFAULT_JOB_OPTIONS)

        raw = dict(item)
        raw["class"] = job_class
        for key, value in defaults.items():
            if raw.get(key) is None:
                raw[key] = value
        if raw.get("queue") is not None:
            raw["queue"] = str(raw["queue"])

        try:
            job = JobDescriptor.model_validate(raw)
        except ValidationError as exc:
            raise InvalidJobError(str(exc)) from exc

        payload = job.to_payload()
        _check_serializable(payload)
        if job.at is not None and job.at <= time.time():
            payload.pop("at")
        return payload


def _resolve_at(interval: float) -> float:
    """Relative seconds or an absolute epoch timestamp → absolute timestamp."""
    interval = float(interval)
    return time.time() + interval if interval < _ABSOLUTE_THRESHOLD else interval


def _check_serializable(payload: dict[str, Any]) -> None:
    try:
        codec.dump_json(payload)
    except (TypeError, ValueError) as exc:
        raise InvalidJobError(f"Job must be JSON serializable: {exc}") from exc
