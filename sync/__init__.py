"""
Client-side synchronization with an authoritative game server.
"""

from .transport import EventBus, NotConnectedError, RequestChannel, RequestTimeoutError, Transport, TransportError
from .reconciler import ConnectionState, PendingMove, SyncReconciler

__all__ = [
    "EventBus",
    "NotConnectedError",
    "RequestChannel",
    "RequestTimeoutError",
    "Transport",
    "TransportError",
    "ConnectionState",
    "PendingMove",
    "SyncReconciler"
]
