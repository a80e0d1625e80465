"""Models package for DiNutri Offline.

This module exports the exchange types and worker protocol models.
"""

from dinutri_offline.models.exchange import (
    FetchRequest,
    OwnedResponse,
    RequestMode,
    ResponseSnapshot,
    to_cache_key,
)
from dinutri_offline.models.worker import MessageAction, WorkerMessage, WorkerState

__all__ = [
    # Exchange
    "FetchRequest",
    "OwnedResponse",
    "RequestMode",
    "ResponseSnapshot",
    "to_cache_key",
    # Worker
    "MessageAction",
    "WorkerMessage",
    "WorkerState",
]
