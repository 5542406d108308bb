"""
Structured Logging Setup

Every component logs through get_service_logger(name), which writes to
stdout under the "nut_monitor.<name>" logger. JSON lines by default;
NUT_MONITOR_LOG_FORMAT=text switches to a human-readable format.
NUT_MONITOR_LOG_LEVEL sets the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LOGGER_PREFIX = "nut_monitor"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Standard LogRecord attributes; anything else on a record came from extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "service", "taskName",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extra fields included"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in record.__dict__.items() if key not in _RECORD_ATTRS
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the component name"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = dict(kwargs.get("extra") or {})
        extra["service"] = self.extra["service"]
        kwargs["extra"] = extra
        return msg, kwargs


def _level(log_level: str) -> int:
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Configure the logger of one component.

    Args:
        service_name: Component name, e.g. "ups.device"
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines when True, plain text otherwise
    """
    level = _level(log_level)
    logger = logging.getLogger(f"{LOGGER_PREFIX}.{service_name}")
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.handlers = [handler]
    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger for a component, configured from the environment"""
    logger = setup_logging(
        service_name,
        os.environ.get("NUT_MONITOR_LOG_LEVEL", "INFO"),
        os.environ.get("NUT_MONITOR_LOG_FORMAT", "json").lower() != "text",
    )
    return ServiceLoggerAdapter(logger, {"service": service_name})


def set_log_level(log_level: str) -> None:
    """Change the level of every nut_monitor logger, existing and future"""
    level = _level(log_level)
    os.environ["NUT_MONITOR_LOG_LEVEL"] = logging.getLevelName(level)

    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith(f"{LOGGER_PREFIX}.") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)


def log_capability_write(
    logger: logging.LoggerAdapter,
    device_name: str,
    capability: str,
    value: Any,
    success: bool = True,
) -> None:
    fields = {"device": device_name, "capability": capability, "value": value}
    if success:
        logger.debug(f"Set {device_name}.{capability} = {value}", extra=fields)
    else:
        logger.warning(f"Failed to set {device_name}.{capability} = {value}", extra=fields)
