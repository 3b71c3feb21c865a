"""API v1 routers"""
from . import (
    announcements,
    realtime,
    reports,
)

__all__ = [
    "announcements",
    "realtime",
    "reports",
]
