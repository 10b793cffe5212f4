"""
Client layer - User-facing API.

This module provides:
- Orchestrator: Runs operations through the resilience pipeline
- Request / RequestOptions: Per-request options and batch entries
- CancelToken: Cancellation signal handed to each operation attempt
"""

from request_governor.client.core import Orchestrator
from request_governor.client.request import (
    Operation,
    Request,
    RequestLike,
    RequestOptions,
)
from request_governor.resilience.cancel import CancelReason, CancelState, CancelToken

__all__ = [
    "CancelReason",
    "CancelState",
    "CancelToken",
    "Operation",
    "Orchestrator",
    "Request",
    "RequestLike",
    "RequestOptions",
]
