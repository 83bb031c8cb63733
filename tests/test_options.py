import pytest
from pydantic import ValidationError

from jworker.config import Options


def test_defaults(monkeypatch):
    for name in ("CONCURRENCY", "QUEUES", "TIMEOUT", "STRICT"):
        monkeypatch.delenv(f"JWORKER_{name}", raising=False)
    options = Options()
    assert options.concurrency == 25
    assert options.queues == ["default"]
    assert options.strict is False
    assert options.timeout == 8.0
    assert options.poll_interval == 5.0
    assert options.heartbeat_interval == 5.0
    assert options.fetch is None


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("JWORKER_CONCURRENCY", "3")
    monkeypatch.setenv("JWORKER_QUEUES", '["critical", "default"]')
    monkeypatch.setenv("JWORKER_STRICT", "true")
    options = Options()
    assert options.concurrency == 3
    assert options.queues == ["critical", "default"]
    assert options.strict is True


def test_keyword_arguments_override_environment(monkeypatch):
    monkeypatch.setenv("JWORKER_CONCURRENCY", "3")
    assert Options(concurrency=7).concurrency == 7


def test_empty_queue_list_rejected():
    with pytest.raises(ValidationError):
        Options(queues=[])


def test_fetch_excluded_from_dump():
    class Custom:
        pass

    options = Options(fetch=Custom)
    assert options.fetch is Custom
    assert "fetch" not in options.model_dump()
