"""
Codec — serialize and deserialize job descriptors to/from the wire.

The store holds job descriptors as compact JSON strings. Producers build the
string once per push; the Processor parses it once per execution and keeps
the original string in the UnitOfWork, so a requeue pushes back exactly the
bytes that were popped.

Wire format (one job):
----------------------
{"class":"Echo","args":[1,2,3],"queue":"default","jid":"b4a1c0ffee...",
 "retry":true,"created_at":1700000000.1,"enqueued_at":1700000000.2}
"""
from __future__ import annotations

import json
from typing import Any


def dump_json(job: dict[str, Any]) -> str:
    """Serialize a job dict to compact JSON. NaN and infinity raise ValueError."""
    return json.dumps(job, separators=(",", ":"), allow_nan=False)


def load_json(data: str) -> dict[str, Any]:
    """Deserialize a JSON job payload. Non-object payloads raise ValueError."""
    job = json.loads(data)
    if not isinstance(job, dict):
        raise ValueError(f"Job payload must be a JSON object, got {type(job).__name__}")
    return job
