"""
Execution support for plan runs.
Handles retry/backoff, auth session brokering and event delivery.
"""

from .retry import (
    NO_RETRY,
    CancellableSleep,
    RetryOutcome,
    RetryPolicy,
    RetryProfile,
    is_transient,
)
from .auth import AuthSessionAdapter, MappingAuthSessionBroker
from .events import EventPipeline

__all__ = [
    "NO_RETRY",
    "CancellableSleep",
    "RetryOutcome",
    "RetryPolicy",
    "RetryProfile",
    "is_transient",
    "AuthSessionAdapter",
    "MappingAuthSessionBroker",
    "EventPipeline",
]
