"""Logging configuration with request and scan-owner context."""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from .config import settings


# Set by the request ID middleware
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
# Set for the duration of a scan run
owner_id_var: ContextVar[Optional[str]] = ContextVar("owner_id", default=None)


def _context() -> dict[str, str]:
    context = {}
    request_id = request_id_var.get()
    if request_id:
        context["request_id"] = request_id
    owner_id = owner_id_var.get()
    if owner_id:
        context["owner_id"] = owner_id
    return context


class StructuredFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        context = _context()
        prefix = ""
        if "request_id" in context:
            prefix += f"[{context['request_id'][:8]}] "
        if "owner_id" in context:
            prefix += f"<{context['owner_id']}> "
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from log messages.

    FinancialData.net passes its API key as the ``key`` query parameter, so
    request URLs that end up in error messages are scrubbed too.
    """

    PATTERN = re.compile(
        r"""(["']?\b(?:api_key|apikey|key|token|secret|authorization|password)\b["']?\s*[=:]\s*)[^\s,&}\]]+""",
        re.IGNORECASE,
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.PATTERN.sub(r"\1[REDACTED]", message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def setup_logging() -> None:
    """Configure the root logger from settings."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, settings.log_level))
    handler.setFormatter(StructuredFormatter() if settings.log_format == "json" else TextFormatter())
    handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(handler)

    # Chatty third-party loggers
    for name in ("uvicorn.access", "httpx", "yfinance", "apscheduler"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the wheelscan prefix."""
    return logging.getLogger(f"wheelscan.{name}")
