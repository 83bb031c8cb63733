import json
import re

import pytest
from pydantic import ValidationError

from jworker.domain.models import JobDescriptor, ProcessInfo, WorkerState, new_jid

# ---------------------------------------------------------------------------
# new_jid
# ---------------------------------------------------------------------------


def test_new_jid_is_24_hex_chars():
    assert re.fullmatch(r"[0-9a-f]{24}", new_jid())


def test_new_jid_is_unique():
    assert len({new_jid() for _ in range(100)}) == 100


# ---------------------------------------------------------------------------
# JobDescriptor
# ---------------------------------------------------------------------------


def test_job_descriptor_defaults():
    job = JobDescriptor.model_validate({"class": "Echo", "args": [1, 2]})
    assert job.job_class == "Echo"
    assert job.args == [1, 2]
    assert job.queue == "default"
    assert job.retry is True
    assert re.fullmatch(r"[0-9a-f]{24}", job.jid)
    assert job.created_at > 0
    assert job.enqueued_at is None
    assert job.at is None


def test_job_descriptor_accepts_field_name():
    job = JobDescriptor(job_class="Echo", args=[])
    assert job.job_class == "Echo"


def test_job_descriptor_tuple_args_become_list():
    job = JobDescriptor.model_validate({"class": "Echo", "args": (1, "a")})
    assert job.args == [1, "a"]


@pytest.mark.parametrize("args", ["abc", 5, {"a": 1}, None])
def test_job_descriptor_rejects_non_list_args(args):
    with pytest.raises(ValidationError):
        JobDescriptor.model_validate({"class": "Echo", "args": args})


@pytest.mark.parametrize("klass", ["", None, 42])
def test_job_descriptor_rejects_bad_class(klass):
    with pytest.raises(ValidationError):
        JobDescriptor.model_validate({"class": klass, "args": []})


def test_job_descriptor_rejects_bool_at():
    with pytest.raises(ValidationError):
        JobDescriptor.model_validate({"class": "Echo", "args": [], "at": True})


@pytest.mark.parametrize("at", [float("nan"), float("inf"), float("-inf")])
def test_job_descriptor_rejects_non_finite_at(at):
    with pytest.raises(ValidationError):
        JobDescriptor.model_validate({"class": "Echo", "args": [], "at": at})


def test_job_descriptor_int_at_becomes_float():
    job = JobDescriptor.model_validate({"class": "Echo", "args": [], "at": 1700000000})
    assert job.at == 1700000000.0
    assert isinstance(job.at, float)


def test_job_descriptor_keeps_unknown_keys():
    job = JobDescriptor.model_validate(
        {"class": "Echo", "args": [], "bid": "batch-1", "backtrace": 5}
    )
    payload = job.to_payload()
    assert payload["bid"] == "batch-1"
    assert payload["backtrace"] == 5


def test_job_descriptor_is_frozen():
    job = JobDescriptor.model_validate({"class": "Echo", "args": []})
    with pytest.raises(ValidationError):
        job.queue = "other"


def test_to_payload_uses_wire_keys_and_drops_none():
    job = JobDescriptor.model_validate({"class": "Echo", "args": [1], "jid": "abc"})
    payload = job.to_payload()
    assert payload["class"] == "Echo"
    assert "job_class" not in payload
    assert payload["jid"] == "abc"
    assert "at" not in payload
    assert "enqueued_at" not in payload


# ---------------------------------------------------------------------------
# WorkerState / ProcessInfo
# ---------------------------------------------------------------------------


def test_worker_state_json_roundtrip():
    state = WorkerState(queue="default", payload={"class": "Echo"}, started_at=1700000000)
    assert WorkerState.model_validate_json(state.model_dump_json()) == state
    assert set(json.loads(state.model_dump_json())) == {"queue", "payload", "started_at"}


def test_process_info_defaults():
    info = ProcessInfo(
        hostname="box",
        started_at=1.0,
        pid=42,
        concurrency=5,
        queues=["default"],
        identity="box:42:abc",
    )
    assert info.tag == ""
    assert info.labels == []
