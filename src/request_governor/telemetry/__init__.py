"""
Telemetry module for request-governor.

Provides structured logging, request metrics and lifecycle event delivery.
"""

from request_governor.telemetry.logger import (
    GovernorLogger,
    JsonFormatter,
    LogContext,
    LogLevel,
    SensitiveDataMasker,
    TextFormatter,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
)
from request_governor.telemetry.metrics import MetricsSnapshot, RequestMetrics
from request_governor.telemetry.notifier import EventNotifier

__all__ = [
    "EventNotifier",
    "GovernorLogger",
    "JsonFormatter",
    "LogContext",
    "LogLevel",
    "MetricsSnapshot",
    "RequestMetrics",
    "SensitiveDataMasker",
    "TextFormatter",
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "set_log_context",
]
