"""Centralised logging configuration for the Redis helpers.

This module builds a single Loguru logger that:
  • Streams to stdout with pretty formatting
  • Ships records to Datadog when DD_API_KEY is set
  • Intercepts standard‑library ``logging`` calls so redis-py's own loggers
    (``redis.asyncio.connection`` etc.) are routed through Loguru
"""

from __future__ import annotations

import inspect
import logging
import os
import sys
from logging import StreamHandler

from datadog_api_client.v2 import ApiClient, Configuration
from datadog_api_client.v2.api.logs_api import LogsApi
from datadog_api_client.v2.model.content_encoding import ContentEncoding
from datadog_api_client.v2.model.http_log import HTTPLog
from datadog_api_client.v2.model.http_log_item import HTTPLogItem
from loguru import logger as loguru_logger

from wonder_redis.core.config import settings

###############################################################################
# Runtime configuration values
###############################################################################


class LogConfig:
    """Logging-related values, read once at import time."""

    def __init__(self) -> None:
        self.environment: str = settings.environment.lower()
        self.service: str = settings.service_name
        self.hostname: str = os.getenv("HOSTNAME", "unknown")
        self.loglevel: str = settings.log_level.upper()
        # Datadog bills by volume, only ship WARNING+ by default
        self.loglevel_dd: str = os.getenv("LOGLEVEL_DATADOG", "WARNING")


logconfig = LogConfig()

###############################################################################
# Handlers
###############################################################################


class InterceptHandler(logging.Handler):
    """Routes standard‑library *logging* calls into Loguru.

    redis-py logs through ``logging.getLogger(__name__)``; every such record
    is re‑emitted as a Loguru record so it shares formatting and transport.
    """

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401
        try:
            level: str | int = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the original caller so Loguru reports their file/line
        frame, depth = inspect.currentframe(), 0
        while frame:
            filename = frame.f_code.co_filename
            is_logging_internal = filename == logging.__file__
            is_importlib_bootstrap = "importlib" in filename and "_bootstrap" in filename
            if depth > 0 and not (is_logging_internal or is_importlib_bootstrap):
                break
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


class DatadogHandler(StreamHandler):
    """Pushes Loguru records to Datadog Logs over HTTPS."""

    def __init__(self) -> None:  # noqa: D401
        super().__init__()
        # DD_SITE / DD_API_KEY are read from the environment by the client
        configuration = Configuration()
        self.api_client = ApiClient(configuration)
        self.api_instance = LogsApi(self.api_client)

    def emit(self, record: "logging.LogRecord") -> None:  # noqa: D401
        log_message = self.format(record)
        log_level = record.levelname

        extras: dict[str, str] = {}
        if getattr(record, "extra", None):
            for key, value in record.extra.items():
                try:
                    extras[key] = str(value)
                except Exception:  # noqa: BLE001
                    continue

        log: dict[str, str] = {
            "status": log_level,
            "ddsource": "loguru",
            "ddtags": f"level:{log_level},env:{logconfig.environment}",
            "message": log_message,
            "service": logconfig.service,
            "timestamp": str(record.created),
            "hostname": logconfig.hostname,
            **extras,
        }

        http_log = HTTPLog([HTTPLogItem(**log)])
        self.api_instance.submit_log(
            content_encoding=ContentEncoding.DEFLATE, body=http_log
        )


###############################################################################
# Public initialiser
###############################################################################


def init_logging():  # noqa: D401
    """Initialise Loguru *once* and return the configured logger."""

    if getattr(init_logging, "_configured", False):
        return loguru_logger

    try:
        loguru_logger.remove()

        loguru_logger.add(
            sys.stdout,
            format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS Z}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level> | <level>{extra}</level>",
            level=logconfig.loglevel,
        )

        if os.getenv("DD_API_KEY"):
            loguru_logger.add(DatadogHandler(), level=logconfig.loglevel_dd)
        else:
            loguru_logger.warning(
                "Datadog API key missing – logs will *not* be forwarded to DD"
            )

        # Funnel std‑lib logging (redis-py included) into Loguru
        logging.basicConfig(
            handlers=[InterceptHandler()],
            level=0,
            force=True,
        )

        init_logging._configured = True  # type: ignore[attr-defined]
        return loguru_logger

    except Exception as exc:  # noqa: BLE001
        print(f"[LOGGING] Failed to initialise Loguru → falling back. Error: {exc}")
        loguru_logger.remove()
        loguru_logger.add(sys.stdout, format="{time} | {level} | {message}", level="DEBUG")
        return loguru_logger


# The logger instance used throughout the package
logger = init_logging()
