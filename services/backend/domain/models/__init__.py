"""Domain models for ZapAlert"""
from .report import (
    Report,
    ReportActionRecord,
    ReportStatus,
    ResponderAction,
)

__all__ = [
    "Report",
    "ReportActionRecord",
    "ReportStatus",
    "ResponderAction",
]
