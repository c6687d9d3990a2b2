"""
Logging configuration for the bus booking service.
"""

import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

from ..config import get_settings

APP_LOGGER = "bus_booking_service"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_json_logging: bool = False,
) -> None:
    """
    Set up logging for the API process and the Celery workers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        enable_json_logging: Enable JSON formatted logs
    """
    settings = get_settings()

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    formatter = "json" if enable_json_logging else "detailed"

    def _logger(level: str) -> Dict[str, Any]:
        return {"level": level, "handlers": ["console"], "propagate": False}

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d "
                    "[%(request_id)s] %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "json": {
                "()": f"{APP_LOGGER}.utils.logging_config.JSONFormatter",
            }
        },
        "filters": {
            "request_id": {
                "()": f"{APP_LOGGER}.utils.logging_config.RequestIDFilter"
            },
            "sensitive_data": {
                "()": f"{APP_LOGGER}.utils.logging_config.SensitiveDataFilter"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": sys.stdout,
                "filters": ["request_id", "sensitive_data"]
            }
        },
        "loggers": {
            APP_LOGGER: _logger(log_level),
            "uvicorn": _logger("INFO"),
            "uvicorn.access": _logger("INFO"),
            "fastapi": _logger("INFO"),
            "sqlalchemy.engine": _logger("WARNING"),
            "sqlalchemy.pool": _logger("WARNING"),
            "redis": _logger("WARNING"),
            "celery": _logger("INFO"),
            "httpx": _logger("WARNING"),
            "httpcore": _logger("WARNING"),
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": formatter,
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "filters": ["request_id", "sensitive_data"]
        }
        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    if settings.environment == "production":
        error_file = log_file.replace(".log", "_errors.log") if log_file else "logs/errors.log"
        Path(error_file).parent.mkdir(parents=True, exist_ok=True)

        config["handlers"]["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": formatter,
            "filename": error_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 10,
            "filters": ["request_id", "sensitive_data"]
        }
        config["loggers"][APP_LOGGER]["handlers"].append("error_file")

    logging.config.dictConfig(config)


class RequestIDFilter(logging.Filter):
    """Filter to add request ID to log records."""

    def filter(self, record):
        request_id = getattr(record, "request_id", None)

        if not request_id:
            try:
                from bus_booking_service.middleware.logging import request_id_var
                request_id = request_id_var.get()
            except (ImportError, LookupError):
                request_id = "no-request-id"

        record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter to remove sensitive data from log records."""

    SENSITIVE_KEYS = {
        "password", "token", "secret", "authorization",
        "cookie", "api_key", "access_token", "document_id"
    }

    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
    TOKEN_PATTERN = re.compile(r"\b[A-Za-z0-9]{32,}\b")

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self._sanitize_string(record.msg)

        for key, value in list(record.__dict__.items()):
            if isinstance(value, dict):
                setattr(record, key, self._sanitize_data(value))

        return True

    def _sanitize_string(self, text: str) -> str:
        text = self.TOKEN_PATTERN.sub("***MASKED***", text)
        return self.EMAIL_PATTERN.sub("***EMAIL***", text)

    def _sanitize_data(self, data):
        if isinstance(data, dict):
            return {
                key: "***MASKED***" if any(sensitive in str(key).lower() for sensitive in self.SENSITIVE_KEYS)
                else self._sanitize_data(value)
                for key, value in data.items()
            }
        elif isinstance(data, str):
            return self._sanitize_string(data)
        elif isinstance(data, (list, tuple)):
            return type(data)(self._sanitize_data(item) for item in data)
        return data


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED = {
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "lineno", "funcName", "created",
        "msecs", "relativeCreated", "thread", "threadName", "taskName",
        "processName", "process", "exc_info", "exc_text", "stack_info", "request_id"
    }

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "request_id"):
            log_entry["request_id"] = record.request_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in self.RESERVED
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def log_performance(operation_name: str, duration: float, **kwargs):
    """Log performance metrics."""
    logger = logging.getLogger(f"{APP_LOGGER}.performance")
    logger.info(
        f"Performance: {operation_name} completed in {duration:.4f}s",
        extra={
            "operation": operation_name,
            "duration": duration,
            "performance_metric": True,
            **kwargs
        }
    )


def log_business_event(event_type: str, details: Dict[str, Any], user_id: Optional[str] = None):
    """Log booking lifecycle events."""
    logger = logging.getLogger(f"{APP_LOGGER}.business")
    logger.info(
        f"Business event: {event_type}",
        extra={
            "event_type": event_type,
            "business_event": True,
            "user_id": user_id,
            **details
        }
    )
