"""Realtime presence and event delivery"""
from .channel import EventChannel
from .connection import Connection, WebSocketConnection
from .presence import PresenceRegistry

__all__ = ["Connection", "EventChannel", "PresenceRegistry", "WebSocketConnection"]
