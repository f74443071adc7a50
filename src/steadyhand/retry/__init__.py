"""Retry module - Backoff primitive shared by every component."""

from .retry import (
    RetryPolicy,
    INTERACTION_RETRY,
    NETWORK_RETRY,
    ITEM_RETRY,
    backoff_delays,
    with_retry,
)

__all__ = [
    "RetryPolicy",
    "INTERACTION_RETRY",
    "NETWORK_RETRY",
    "ITEM_RETRY",
    "backoff_delays",
    "with_retry",
]
