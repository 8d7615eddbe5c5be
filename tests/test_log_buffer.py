"""
tests/test_log_buffer.py — In-memory log tail
==============================================
"""

from __future__ import annotations

import logging

import pytest

from realmstats.services.log_buffer import LogBuffer, RingBufferHandler, set_capture_level


@pytest.fixture
def buffer_logger():
    buffer = LogBuffer(capacity=3)
    handler = RingBufferHandler(buffer, level=logging.DEBUG)
    log = logging.getLogger("realmstats.tests.buffer")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    log.addHandler(handler)
    yield buffer, log
    log.removeHandler(handler)


class TestLogBuffer:
    def test_capacity_drops_oldest(self, buffer_logger):
        buffer, log = buffer_logger
        for i in range(5):
            log.info("message %d", i)

        assert buffer.size == 3
        assert [e["message"] for e in buffer.get_entries()] == [
            "message 2", "message 3", "message 4"
        ]

    def test_level_and_logger_filters(self, buffer_logger):
        buffer, log = buffer_logger
        log.debug("noise")
        log.warning("careful")
        logging.getLogger("realmstats.tests.buffer.child").error("broken")

        assert [e["message"] for e in buffer.get_entries(level="WARNING")] == [
            "careful", "broken"
        ]
        entries = buffer.get_entries(logger_filter="realmstats.tests.buffer.child")
        assert [e["message"] for e in entries] == ["broken"]

    def test_exception_text_is_captured(self, buffer_logger):
        buffer, log = buffer_logger
        try:
            raise ValueError("bad cell")
        except ValueError:
            log.exception("Upload %d failed", 7)

        (entry,) = buffer.get_entries()
        assert entry["message"] == "Upload 7 failed"
        assert "ValueError: bad cell" in entry["error"]

    def test_tail(self, buffer_logger):
        buffer, log = buffer_logger
        log.info("a")
        log.info("b")
        assert [e["message"] for e in buffer.get_entries(tail=1)] == ["b"]


class TestCaptureLevel:
    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            set_capture_level("LOUD")

    def test_sets_level(self):
        assert set_capture_level("warning") == "WARNING"
        assert set_capture_level("INFO") == "INFO"
