"""
Structured logging for request-governor.

Provides request-scoped context (request id, job id, attempt) carried in a
ContextVar, JSON and text formatters, and masking of credentials that may
appear in URLs or headers of governed HTTP operations.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

_log_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "governor_log_context", default=None
)


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_logging_level(self) -> int:
        """Convert to standard logging level."""
        return getattr(logging, self.value)


@dataclass
class LogContext:
    """Request-scoped logging context.

    Attributes:
        request_id: Orchestrator request identifier
        job_id: Scheduler job identifier
        attempt: Current attempt index (0-based)
        extra: Additional context fields
    """

    request_id: str | None = None
    job_id: str | None = None
    attempt: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        if self.request_id:
            result["request_id"] = self.request_id
        if self.job_id:
            result["job_id"] = self.job_id
        if self.attempt is not None:
            result["attempt"] = self.attempt
        result.update(self.extra)
        return result

    def with_extra(self, **kwargs: Any) -> LogContext:
        """Create new context with additional fields."""
        return LogContext(
            request_id=self.request_id,
            job_id=self.job_id,
            attempt=self.attempt,
            extra={**self.extra, **kwargs},
        )


def get_log_context() -> LogContext:
    """Get current logging context."""
    data = _log_context.get()
    if not data:
        return LogContext()
    data = dict(data)
    return LogContext(
        request_id=data.pop("request_id", None),
        job_id=data.pop("job_id", None),
        attempt=data.pop("attempt", None),
        extra=data,
    )


def set_log_context(context: LogContext) -> None:
    """Set logging context for the current task."""
    _log_context.set(context.to_dict())


def clear_log_context() -> None:
    """Clear logging context."""
    _log_context.set(None)


class SensitiveDataMasker:
    """Masks credentials in log messages and structured fields."""

    DEFAULT_PATTERNS: ClassVar[list[tuple[str, str]]] = [
        (r"(Bearer\s+)([^\s\"']+)", r"\1***REDACTED***"),
        (r"(Authorization[\"']?\s*[:=]\s*[\"']?)([^\"'\s]+)", r"\1***REDACTED***"),
        (r"(api[_-]?key[\"']?\s*[:=]\s*[\"']?)([^\"'\s&]+)", r"\1***REDACTED***"),
        (r"([?&](?:token|access_token|key)=)([^&\s]+)", r"\1***REDACTED***"),
    ]

    SENSITIVE_KEYS: ClassVar[tuple[str, ...]] = (
        "key",
        "token",
        "secret",
        "password",
        "authorization",
    )

    def __init__(self, patterns: list[tuple[str, str]] | None = None) -> None:
        self._patterns = [
            (re.compile(p, re.IGNORECASE), r)
            for p, r in (patterns or self.DEFAULT_PATTERNS)
        ]

    def mask(self, text: str) -> str:
        """Mask sensitive data in text."""
        result = text
        for pattern, replacement in self._patterns:
            result = pattern.sub(replacement, result)
        return result

    def mask_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive values in a dictionary, recursively."""
        result: dict[str, Any] = {}
        for key, value in data.items():
            if any(s in key.lower() for s in self.SENSITIVE_KEYS):
                result[key] = "***REDACTED***"
            elif isinstance(value, str):
                result[key] = self.mask(value)
            elif isinstance(value, dict):
                result[key] = self.mask_dict(value)
            else:
                result[key] = value
        return result


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, masker: SensitiveDataMasker | None = None) -> None:
        super().__init__()
        self._masker = masker or SensitiveDataMasker()

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": self._masker.mask(record.getMessage()),
        }

        if context_dict := get_log_context().to_dict():
            log_data["context"] = context_dict

        if hasattr(record, "extra_fields"):
            log_data.update(self._masker.mask_dict(record.extra_fields))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def __init__(self, masker: SensitiveDataMasker | None = None) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self._masker = masker or SensitiveDataMasker()

    def format(self, record: logging.LogRecord) -> str:
        original_msg = record.msg
        record.msg = self._masker.mask(str(record.msg))
        try:
            result = super().format(record)
        finally:
            record.msg = original_msg

        fields = get_log_context().to_dict()
        if hasattr(record, "extra_fields"):
            fields.update(self._masker.mask_dict(record.extra_fields))
        if fields:
            result = f"{result} | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return result


class GovernorLogger:
    """Logger with keyword structured fields.

    Example:
        >>> logger = get_logger("request_governor.scheduler")
        >>> logger.debug("Job dispatched", job_id="job_1", priority=5)
    """

    _loggers: ClassVar[dict[str, logging.Logger]] = {}
    _level: ClassVar[LogLevel] = LogLevel.WARNING
    _handler: ClassVar[logging.Handler | None] = None

    @classmethod
    def configure(
        cls,
        level: LogLevel = LogLevel.INFO,
        format: str = "text",
        stream: Any = None,
        masker: SensitiveDataMasker | None = None,
    ) -> None:
        """Configure output for every governor logger.

        Args:
            level: Log level
            format: Output format ('json' or 'text')
            stream: Output stream (default: stderr)
            masker: Sensitive data masker
        """
        cls._level = level
        formatter: logging.Formatter = (
            JsonFormatter(masker=masker) if format == "json" else TextFormatter(masker=masker)
        )
        cls._handler = logging.StreamHandler(stream or sys.stderr)
        cls._handler.setFormatter(formatter)

        for logger in cls._loggers.values():
            logger.handlers.clear()
            logger.addHandler(cls._handler)
            logger.setLevel(level.to_logging_level())

    @classmethod
    def get_logger(cls, name: str) -> GovernorLogger:
        """Get or create a logger."""
        if name not in cls._loggers:
            logger = logging.getLogger(name)
            logger.setLevel(cls._level.to_logging_level())
            if cls._handler:
                logger.handlers.clear()
                logger.addHandler(cls._handler)
                logger.propagate = False
            cls._loggers[name] = logger

        return cls(cls._loggers[name])

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, exc_info: bool = False, **kwargs: Any) -> None:
        extra = {"extra_fields": kwargs} if kwargs else {}
        self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)


def get_logger(name: str) -> GovernorLogger:
    """Get a logger instance."""
    return GovernorLogger.get_logger(name)
