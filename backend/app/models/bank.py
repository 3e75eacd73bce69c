"""
Bank Reconciliation Models

- BankAccount: treasury account per tenant
- BankTransaction: imported bank line with running reconciliation totals
- InvoiceBankReconciliation: append-only link allocating part of a transaction to an invoice

A single incoming transfer can settle several invoices (batch payment) and an
invoice can be settled from several transfers, so allocations live in their
own table. BankTransaction.invoice_id is the legacy single-invoice pointer and
keeps the first invoice ever reconciled against the transaction.
"""
import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, DateTime, Date, func, ForeignKey, Text, Numeric, Boolean, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    iban: Mapped[Optional[str]] = mapped_column(String(34), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    transactions = relationship("BankTransaction", back_populates="bank_account")


class BankTransaction(Base):
    """
    Bank transaction with partial reconciliation tracking.

    amount is signed: positive = credit (incoming), negative = debit.
    is_reconciled is true once amount - reconciled_amount <= 0.01.
    version is bumped on every UPDATE; a stale write raises StaleDataError.
    """
    __tablename__ = "bank_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bank_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    value_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    label: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counterparty_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    counterparty_account: Mapped[Optional[str]] = mapped_column(String(34), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(140), nullable=True)

    # Reconciliation state
    reconciled_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {
        "version_id_col": version,
        "eager_defaults": True,
    }

    # Relationships
    bank_account = relationship("BankAccount", back_populates="transactions")
    reconciliations = relationship(
        "InvoiceBankReconciliation",
        back_populates="bank_transaction",
        order_by="InvoiceBankReconciliation.created_at",
    )

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.amount) - Decimal(self.reconciled_amount or 0)


class InvoiceBankReconciliation(Base):
    """Allocation of part of a bank transaction to one invoice. Never updated."""
    __tablename__ = "invoice_bank_reconciliations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bank_transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bank_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    bank_transaction = relationship("BankTransaction", back_populates="reconciliations")
    invoice = relationship("Invoice")
