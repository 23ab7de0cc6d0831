"""Logging setup for the kernel: one JSON stream handler on the package logger."""

import json
import logging

PACKAGE_LOGGER = "wasteup_kernel"

_FIELDS = {
    "timestamp": "asctime",
    "level": "levelname",
    "logger": "name",
    "function": "funcName",
    "line": "lineno",
    "message": "message",
}


class JsonFormatter(logging.Formatter):
    """Formats each record as a single JSON object."""

    def __init__(self, fields: dict = None, datefmt: str = "%Y-%m-%dT%H:%M:%S"):
        super().__init__(datefmt=datefmt)
        self.fields = fields or _FIELDS

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        record.asctime = self.formatTime(record, self.datefmt)
        payload = {key: getattr(record, attr, None) for key, attr in self.fields.items()}
        if record.exc_info:
            if not record.exc_text:
                record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exc_info"] = record.exc_text
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Install the JSON handler once and set the package log level."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(h.formatter, JsonFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    return logger
