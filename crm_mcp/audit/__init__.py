"""Audit trail of dispatch attempts."""

from .logger import AuditLogger, AuditSink, StoreAuditSink
from .records import DispatchRecord, Outcome

__all__ = ["AuditLogger", "AuditSink", "DispatchRecord", "Outcome", "StoreAuditSink"]
