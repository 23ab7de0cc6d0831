"""Tests for the JSON logging setup."""

import json
import logging
import sys

from wasteup_kernel.log import JsonFormatter, configure_logging


class TestJsonFormatter:
    def test_fields(self):
        record = logging.LogRecord(
            "wasteup_kernel.lifecycle.engine", logging.INFO, __file__, 42,
            "Created %s in %s", ("req_1", "Bodija"), None, func="create_request",
        )
        data = json.loads(JsonFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "wasteup_kernel.lifecycle.engine"
        assert data["message"] == "Created req_1 in Bodija"
        assert data["function"] == "create_request"
        assert data["line"] == 42

    def test_exception_included(self):
        try:
            raise RuntimeError("sqlite locked")
        except RuntimeError:
            exc_info = sys.exc_info()
        record = logging.LogRecord(
            "wasteup_kernel", logging.ERROR, __file__, 1, "boom", (), exc_info
        )
        data = json.loads(JsonFormatter().format(record))
        assert "sqlite locked" in data["exc_info"]


class TestConfigureLogging:
    def test_single_handler(self):
        logger = configure_logging("DEBUG")
        configure_logging("WARNING")
        handlers = [h for h in logger.handlers if isinstance(h.formatter, JsonFormatter)]
        assert len(handlers) == 1
        assert logger.level == logging.WARNING

    def test_existing_json_handler_reused(self):
        logger = logging.getLogger("wasteup_kernel")
        for h in list(logger.handlers):
            logger.removeHandler(h)
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

        configure_logging("INFO")
        assert logger.handlers == [handler]
