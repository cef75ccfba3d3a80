from __future__ import annotations

import io
import json
import logging

import pytest

from kronos_consul.observability import LogContext, get_logger


@pytest.fixture(autouse=True)
def _clear_context():
    LogContext.clear()
    yield
    LogContext.clear()


def test_json_records_carry_context_and_extras() -> None:
    stream = io.StringIO()
    logger = get_logger("kronos_consul.tests.json", log_format="json", stream=stream)

    with LogContext(service="kronos", instance_id="node1", endpoint="nodes"):
        logger.info("Registered %s", "node1", extra={"attempts": 3})
    logger.info("outside")

    first, second = (json.loads(line) for line in stream.getvalue().splitlines())
    assert first["message"] == "Registered node1"
    assert first["level"] == "INFO"
    assert first["logger"] == "kronos_consul.tests.json"
    assert (first["service"], first["instance_id"], first["endpoint"]) == ("kronos", "node1", "nodes")
    assert first["attempts"] == 3
    assert second["service"] == "-"


def test_console_format_renders_context() -> None:
    stream = io.StringIO()
    logger = get_logger("kronos_consul.tests.console", log_format="console", stream=stream)

    with LogContext(service="kronos"):
        logger.warning("watch failed")

    line = stream.getvalue().strip()
    assert "WARNING kronos_consul.tests.console watch failed" in line
    assert line.endswith("service=kronos instance_id=-")


def test_handler_is_attached_once_per_format() -> None:
    stream = io.StringIO()
    logger = get_logger("kronos_consul.tests.once", log_format="json", stream=stream)
    again = get_logger("kronos_consul.tests.once", log_format="json", stream=stream)

    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
    assert logger.propagate is False


def test_nested_contexts_restore_outer_values() -> None:
    with LogContext(service="outer"):
        with LogContext(instance_id="node1"):
            assert LogContext.snapshot()["service"] == "outer"
            assert LogContext.snapshot()["instance_id"] == "node1"
        assert LogContext.snapshot()["instance_id"] is None
