"""
Responder client - offline-tolerant delivery of responder actions
"""
from .api_client import OfflineError, ResponderAPIClient, ServerError
from .dispatcher import ActionDispatcher
from .indicators import Indicator
from .network_monitor import NetworkMonitor
from .offline_queue import OfflineQueue, PendingAction

__all__ = [
    "ActionDispatcher",
    "Indicator",
    "NetworkMonitor",
    "OfflineError",
    "OfflineQueue",
    "PendingAction",
    "ResponderAPIClient",
    "ServerError",
]
