"""Responder Client Configuration"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Backend API
    backend_url: str = "http://localhost:8000"
    api_token: Optional[str] = None

    # Offline queue (survives restarts)
    queue_path: str = "pending_responses.json"

    # An action with no acknowledgement within this window is treated as offline
    ack_timeout_seconds: float = 10.0

    # Connectivity probing against /health
    health_timeout_seconds: float = 3.0
    health_interval_seconds: float = 8.0
    failure_threshold: int = 2

    class Config:
        env_prefix = "RESPONDER_"
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
