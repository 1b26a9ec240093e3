"""Unit tests for the package logging setup."""

import json
import logging

from ocp.utils.logging import PACKAGE_LOGGER, ContextFormatter, JSONFormatter, configure_logging, get_logger


def record(**extra) -> logging.LogRecord:
    rec = logging.makeLogRecord({"name": "ocp.worker.proxy", "levelname": "INFO", "msg": "Cached 4 resources"})
    rec.__dict__.update(extra)
    return rec


class TestFormatters:
    """Tests for JSONFormatter and ContextFormatter."""

    def test_json_includes_extra_fields(self) -> None:
        data = json.loads(JSONFormatter().format(record(bucket="v1", worker_id="v1#abc")))
        assert data["message"] == "Cached 4 resources"
        assert data["logger"] == "ocp.worker.proxy"
        assert data["bucket"] == "v1"
        assert data["worker_id"] == "v1#abc"

    def test_text_appends_context(self) -> None:
        line = ContextFormatter().format(record(bucket="v1"))
        assert line.endswith("Cached 4 resources [bucket=v1]")

    def test_text_without_context(self) -> None:
        assert ContextFormatter().format(record()).endswith("Cached 4 resources")


def test_module_loggers_share_the_package_handler() -> None:
    root = configure_logging(level="debug", fmt="json")
    try:
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
        child = get_logger("ocp.io.cache")
        assert not child.handlers
        assert child.getEffectiveLevel() == logging.DEBUG
    finally:
        configure_logging()
    assert logging.getLogger(PACKAGE_LOGGER).handlers
