from feeledger.core.models.tenant import Tenant
from feeledger.core.models.class_model import SchoolClass
from feeledger.core.models.student import Student
from feeledger.core.models.fee_head import FeeHead
from feeledger.core.models.fee_structure import FeeStructure
from feeledger.core.models.invoice import Invoice, InvoiceLine, InvoiceSequence
from feeledger.core.models.payment_transaction import PaymentTransaction
from feeledger.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Tenant",
    "SchoolClass",
    "Student",
    "FeeHead",
    "FeeStructure",
    "Invoice",
    "InvoiceLine",
    "InvoiceSequence",
    "PaymentTransaction",
    "FeeAuditLog",
]
