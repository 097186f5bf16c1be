"""Logging setup for the collaboration engine, driven by environment variables."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

ENGINE_LOGGER = "collab_engine"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
JSON_FORMAT = "%(timestamp)s %(levelname)s %(name)s %(correlation_id)s %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Gives every record a ``correlation_id`` so both formats can print it.

    Records logged through StructuredLogger already carry one; third-party
    records get ``-``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


class LoggingConfig:
    """Logging settings read once at import."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    # Level for collab_engine.* loggers only; defaults to LOG_LEVEL
    ENGINE_LOG_LEVEL = os.environ.get("COLLAB_LOG_LEVEL", LOG_LEVEL).upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_SERVICE_NAME = os.environ.get("LOG_SERVICE_NAME", "collab-engine")
    LOG_MESSAGE_CONTENT = os.environ.get("LOG_MESSAGE_CONTENT", "true").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "500"))

    _configured = False

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                JSON_FORMAT,
                timestamp=True,
                static_fields={"service": cls.LOG_SERVICE_NAME},
            )
        return logging.Formatter(TEXT_FORMAT)

    @classmethod
    def setup_logging(cls, force: bool = False) -> None:
        """Install one stdout handler on the root logger.

        Safe to call from every function entry point; only the first call
        (or a forced one) touches the handlers.
        """
        if cls._configured and not force:
            return

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, cls.LOG_LEVEL, logging.INFO))
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(CorrelationIdFilter())
        handler.setFormatter(cls.build_formatter())
        root_logger.addHandler(handler)

        logging.getLogger(ENGINE_LOGGER).setLevel(getattr(logging, cls.ENGINE_LOG_LEVEL, logging.INFO))
        for noisy in ("httpx", "httpcore", "hpack", "supabase", "postgrest"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

        cls._configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
