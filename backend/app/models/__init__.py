# Models module
from app.models.user import User
from app.models.tenant import Tenant, TenantMember, DocumentCounter
from app.models.client import Client, ClientStatus
from app.models.sales import (
    Quote,
    QuoteItem,
    QuoteStatus,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
)
from app.models.bank import (
    BankAccount,
    BankTransaction,
    InvoiceBankReconciliation,
)
from app.models.project import (
    Project,
    ProjectColumn,
    ProjectCard,
    ProjectGuest,
)

__all__ = [
    "User",
    "Tenant",
    "TenantMember",
    "DocumentCounter",
    "Client",
    "ClientStatus",
    "Quote",
    "QuoteItem",
    "QuoteStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "BankAccount",
    "BankTransaction",
    "InvoiceBankReconciliation",
    "Project",
    "ProjectColumn",
    "ProjectCard",
    "ProjectGuest",
]
