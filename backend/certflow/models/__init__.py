from .auth import User, Role, RolePermission
from .security import AuditEvent
from .history import StatusHistory
from .requests import CertificateRequest, RequestComment
from .requisitions import Requisition, RequisitionItem
from .invoices import Invoice, InvoiceLineItem, InvoicePayment
from .finance import FinanceTransaction
from .documents import DocumentSequence
from .communications import Task, NotificationEvent, Notification

__all__ = [
    'User', 'Role', 'RolePermission',
    'AuditEvent',
    'StatusHistory',
    'CertificateRequest', 'RequestComment',
    'Requisition', 'RequisitionItem',
    'Invoice', 'InvoiceLineItem', 'InvoicePayment',
    'FinanceTransaction',
    'DocumentSequence',
    'Task', 'NotificationEvent', 'Notification',
]
