"""Structured JSON log lines."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from logging_utils import JSONLineFormatter, bind_rendezvous_key, log_event, new_request_id


def _format(record: logging.LogRecord) -> dict:
    return json.loads(JSONLineFormatter().format(record))


def test_event_fields_are_merged(caplog) -> None:
    logger = logging.getLogger("flightstatus.test")
    with caplog.at_level(logging.INFO, logger="flightstatus.test"):
        log_event(logger, "fanout_dispatched", key="fs:2:x", windows=2)

    line = _format(caplog.records[-1])
    assert line["message"] == "fanout_dispatched"
    assert line["event"] == "fanout_dispatched"
    assert line["key"] == "fs:2:x"
    assert line["windows"] == 2
    assert line["level"] == "INFO"
    assert line["logger"] == "flightstatus.test"


def test_reserved_names_are_prefixed(caplog) -> None:
    logger = logging.getLogger("flightstatus.test")
    with caplog.at_level(logging.INFO, logger="flightstatus.test"):
        log_event(logger, "upload", filename="a.json", module="x")

    line = _format(caplog.records[-1])
    assert line["field_filename"] == "a.json"
    assert line["field_module"] == "x"


def test_request_id_is_attached() -> None:
    rid = new_request_id()
    record = logging.LogRecord("flightstatus.test", logging.INFO, __file__, 1, "hello", None, None)
    assert _format(record)["request_id"] == rid


def test_exception_is_formatted() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "flightstatus.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    assert "RuntimeError: boom" in _format(record)["exc_info"]


def test_rendezvous_key_is_attached_within_task() -> None:
    formatted = {}

    async def window() -> None:
        bind_rendezvous_key("fs:2:abc")
        record = logging.LogRecord("flightstatus.test", logging.INFO, __file__, 1, "w", None, None)
        formatted["inside"] = _format(record)

    asyncio.run(window())
    outside = logging.LogRecord("flightstatus.test", logging.INFO, __file__, 1, "o", None, None)

    assert formatted["inside"]["rendezvous_key"] == "fs:2:abc"
    assert "rendezvous_key" not in _format(outside)
