from .base import BaseCollector, CollectorResult
from .guests import GuestCollector
from .audit import AuditLogCollector

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "GuestCollector",
    "AuditLogCollector",
]
