"""
Async client for album rating views.

Importing this package does not require configured Django settings.
"""

from .debounce import Debouncer
from .store import (
    ReconciliationStore,
    SongView,
    FetchStatus,
    StoreClosedError,
)
from .transport import ReviewTransport, HttpReviewTransport, TransportError

__all__ = [
    'Debouncer',
    'ReconciliationStore',
    'SongView',
    'FetchStatus',
    'StoreClosedError',
    'ReviewTransport',
    'HttpReviewTransport',
    'TransportError',
]
