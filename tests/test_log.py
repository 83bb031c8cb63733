import logging

from jworker.log import (
    JobContextFilter,
    context_label,
    current_context,
    job_context,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)


def test_context_label_uses_class_and_jid():
    assert context_label({"class": "Echo", "jid": "abc"}) == "Echo JID-abc"


def test_context_label_prefers_wrapped_and_adds_bid():
    label = context_label({"class": "Wrapper", "wrapped": "Real", "jid": "abc", "bid": "b1"})
    assert label == "Real JID-abc BID-b1"


def test_job_context_is_reset_on_exit():
    assert current_context() == ""
    with job_context({"class": "Echo", "jid": "abc"}):
        assert current_context() == "Echo JID-abc"
    assert current_context() == ""


def test_filter_adds_job_context():
    record = _record()
    with job_context({"class": "Echo", "jid": "abc"}):
        assert JobContextFilter().filter(record) is True
    assert record.job_context == " Echo JID-abc"


def test_filter_outside_job_is_empty():
    record = _record()
    JobContextFilter().filter(record)
    assert record.job_context == ""
