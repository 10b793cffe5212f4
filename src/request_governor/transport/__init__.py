"""
Transport layer - HTTP operations for the orchestrator.

This module provides:
- HttpTransport: httpx-backed operations honoring their CancelToken
- GovernedHttpClient: HTTP verbs routed through an Orchestrator
"""

from request_governor.transport.http import GovernedHttpClient, HttpTransport

__all__ = [
    "GovernedHttpClient",
    "HttpTransport",
]
