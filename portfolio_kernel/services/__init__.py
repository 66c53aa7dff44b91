"""Kernel services: the audit and alert sinks."""

from portfolio_kernel.services.alert_service import AlertService, AlertSink
from portfolio_kernel.services.auditor_service import (
    AuditorService,
    AuditSink,
    AuditTrace,
    AuditTraceEntry,
)

__all__ = [
    "AlertService",
    "AlertSink",
    "AuditorService",
    "AuditSink",
    "AuditTrace",
    "AuditTraceEntry",
]
