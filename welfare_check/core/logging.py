"""
Logging configuration for the Welfare Check service

Every line carries the provider call id it concerns, or "-" for lines
not tied to a call, so one call's webhook history can be grepped out of
the service log.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "welfare_check"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(call_id)s] %(message)s"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "libsql_client")


class CallContextFilter(logging.Filter):
    """Fill in call_id on records logged outside a call context"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "call_id"):
            record.call_id = "-"
        return True


class CallLogAdapter(logging.LoggerAdapter):
    """Logger bound to one provider call id"""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("call_id", self.extra["call_id"])
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the application

    Args:
        level: Log level name; defaults to settings.log_level

    Returns:
        The service's root logger
    """
    from .config import settings

    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(CallContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    if not settings.debug:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the welfare_check namespace"""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def bind_call(logger: logging.Logger, call_id: Optional[str]) -> CallLogAdapter:
    """Wrap a logger so every line it writes is tagged with call_id"""
    return CallLogAdapter(logger, {"call_id": call_id or "-"})
