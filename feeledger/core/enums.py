from enum import Enum


class TenantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    TEACHER = "TEACHER"
    PARENT = "PARENT"


class InvoiceStatus(str, Enum):
    pending = "pending"
    partially_paid = "partially_paid"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


# Statuses that still accept payments, discounts and the due-date sweep
OPEN_INVOICE_STATUSES = (
    InvoiceStatus.pending.value,
    InvoiceStatus.partially_paid.value,
    InvoiceStatus.overdue.value,
)
TERMINAL_INVOICE_STATUSES = (InvoiceStatus.paid.value, InvoiceStatus.cancelled.value)


class PaymentMethod(str, Enum):
    manual_reference = "manual-reference"
    cash = "cash"


class TransactionStatus(str, Enum):
    submitted = "submitted"
    verified = "verified"
    rejected = "rejected"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DEACTIVATE = "DEACTIVATE"
    VERIFY = "VERIFY"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    STATUS_CHANGE = "STATUS_CHANGE"
