"""Database access"""
from .connection import (
    dispose_engine,
    get_engine,
    get_session_maker,
    init_db,
    make_session_maker,
)
from .report_store import ReportStore

__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session_maker",
    "init_db",
    "make_session_maker",
    "ReportStore",
]
