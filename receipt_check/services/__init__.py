from .receipt_check import ReceiptCheckService
from .audit import AuditService

__all__ = ["ReceiptCheckService", "AuditService"]
