"""Live connection handles"""
from abc import ABC, abstractmethod
from typing import Any, Dict
from uuid import uuid4

from fastapi import WebSocket


class Connection(ABC):
    """A live client connection that can receive JSON messages"""

    def __init__(self):
        self.id = uuid4().hex

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class WebSocketConnection(Connection):
    def __init__(self, websocket: WebSocket):
        super().__init__()
        self.websocket = websocket

    async def send(self, message: Dict[str, Any]) -> None:
        await self.websocket.send_json(message)
