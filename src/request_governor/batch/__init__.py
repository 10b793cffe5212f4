"""
Batch combinators for request-governor.

Combine the outcomes of several governed requests.
"""

from request_governor.batch.combinators import (
    BatchResult,
    BatchType,
    Settled,
    SettledStatus,
    first_settled,
    first_success,
    gather_all,
    settle_all,
)

__all__ = [
    "BatchResult",
    "BatchType",
    "Settled",
    "SettledStatus",
    "first_settled",
    "first_success",
    "gather_all",
    "settle_all",
]
