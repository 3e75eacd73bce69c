"""
Reconciliation Ledger Service

Handles:
- Marking invoices paid, optionally against an incoming bank transaction
- Partial allocation of one bank transaction across several invoices
- Match suggestions for an invoice among unreconciled transactions

A bank transaction keeps a running reconciled_amount; every allocation is an
InvoiceBankReconciliation row. The transaction is read FOR UPDATE and written
with a version check, so two concurrent allocations on the same transaction
cannot both commit: the loser gets a ConflictError and nothing is persisted.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.models.bank import BankTransaction, InvoiceBankReconciliation
from app.models.sales import Invoice, InvoiceStatus
from app.services.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.services.logging import crm_logger

logger = logging.getLogger(__name__)

# Amounts closer than one cent are considered equal
TOLERANCE = Decimal("0.01")

# Relative difference below which a transaction is a "close" match
CLOSE_MATCH_RATIO = Decimal("0.05")

# Maximum number of candidate transactions returned by reconcile_suggestions
SUGGESTION_LIMIT = 150


class Allocation(NamedTuple):
    reconciled_amount: Decimal
    is_reconciled: bool


def allocation(amount: Decimal, reconciled: Decimal, invoice_amount: Decimal) -> Allocation:
    """
    Compute the state of a bank transaction after allocating an invoice to it.

    Over-allocation is not refused: the new total may exceed the transaction
    amount, in which case the transaction is reconciled.
    """
    new_reconciled = Decimal(reconciled or 0) + Decimal(invoice_amount)
    return Allocation(
        reconciled_amount=new_reconciled,
        is_reconciled=new_reconciled >= Decimal(amount) - TOLERANCE,
    )


@dataclass
class TransactionSuggestion:
    """Candidate bank transaction for an invoice, with its match flags."""
    transaction: BankTransaction
    remaining_amount: Decimal
    amount_diff: Decimal
    is_exact_match: bool
    is_close_match: bool
    invoice_fits_in_remaining: bool

    @property
    def is_partially_reconciled(self) -> bool:
        return Decimal(self.transaction.reconciled_amount or 0) > 0

    @property
    def match_score(self) -> int:
        if self.is_exact_match:
            return 100
        if self.is_close_match:
            return 80
        if self.invoice_fits_in_remaining:
            return 60
        return 0


@dataclass
class ReconcileSuggestions:
    invoice: Invoice
    suggested: List[TransactionSuggestion] = field(default_factory=list)
    others: List[TransactionSuggestion] = field(default_factory=list)

    @property
    def total_unreconciled(self) -> int:
        return len(self.suggested) + len(self.others)


class ReconciliationService:
    """Service for invoice payment and bank transaction allocation."""

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def _get_invoice(self, invoice_id: UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.client))
            .where(
                Invoice.id == invoice_id,
                Invoice.tenant_id == self.tenant_id,
            )
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice not found", code="INVOICE_NOT_FOUND")
        return invoice

    async def _load_transaction(self, bank_transaction_id: UUID) -> BankTransaction:
        """Load and lock a bank transaction of the tenant."""
        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.id == bank_transaction_id,
                BankTransaction.tenant_id == self.tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if not transaction:
            raise NotFoundError("Bank transaction not found", code="BANK_TRANSACTION_NOT_FOUND")
        return transaction

    async def mark_invoice_paid(
        self,
        invoice_id: UUID,
        payment_date: Optional[date] = None,
        payment_method: Optional[str] = None,
        payment_notes: Optional[str] = None,
        bank_transaction_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Mark an invoice as paid, optionally allocating it to a bank transaction.

        The invoice update, the reconciliation row and the transaction update
        are flushed together; the caller commits once.

        Raises:
            NotFoundError: invoice or bank transaction not found in the tenant
            InvalidStateError: invoice already paid or cancelled
            ValidationError: bank transaction is not a credit
            ConflictError: the transaction was modified concurrently
        """
        invoice = await self._get_invoice(invoice_id)

        if invoice.status == InvoiceStatus.PAID.value:
            raise InvalidStateError("Invoice is already paid", code="INVOICE_ALREADY_PAID")
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvalidStateError("Cancelled invoices cannot be paid", code="INVOICE_CANCELLED")

        transaction = None
        if bank_transaction_id is not None:
            transaction = await self._load_transaction(bank_transaction_id)
            if Decimal(transaction.amount) <= 0:
                raise ValidationError(
                    "Only credit transactions can settle an invoice",
                    code="NOT_A_CREDIT_TRANSACTION",
                )

        invoice.status = InvoiceStatus.PAID.value
        invoice.payment_date = payment_date or date.today()
        invoice.payment_method = payment_method
        invoice.payment_notes = payment_notes

        invoice_amount = Decimal(invoice.total_ttc)
        over_allocated = False

        if transaction is not None:
            over_allocated = invoice_amount > transaction.remaining_amount + TOLERANCE
            result = allocation(transaction.amount, transaction.reconciled_amount, invoice_amount)

            self.db.add(
                InvoiceBankReconciliation(
                    tenant_id=self.tenant_id,
                    invoice_id=invoice.id,
                    bank_transaction_id=transaction.id,
                    amount=invoice_amount,
                )
            )
            transaction.reconciled_amount = result.reconciled_amount
            transaction.is_reconciled = result.is_reconciled
            # Legacy single-invoice pointer keeps the first invoice only
            if transaction.invoice_id is None:
                transaction.invoice_id = invoice.id

        try:
            await self.db.flush()
        except StaleDataError:
            await self.db.rollback()
            crm_logger.reconciliation_conflict(
                bank_transaction_id=bank_transaction_id,
                tenant_id=self.tenant_id,
                invoice_id=invoice_id,
            )
            raise ConflictError(
                "Bank transaction was modified concurrently, please retry",
                code="RECONCILIATION_CONFLICT",
            )

        if transaction is not None:
            crm_logger.reconciliation_allocated(
                bank_transaction_id=transaction.id,
                tenant_id=self.tenant_id,
                invoice_id=invoice.id,
                amount=invoice_amount,
                reconciled_amount=transaction.reconciled_amount,
                is_reconciled=transaction.is_reconciled,
                over_allocated=over_allocated,
            )
        crm_logger.invoice_paid(
            invoice_id=invoice.id,
            tenant_id=self.tenant_id,
            amount=invoice_amount,
            bank_transaction_id=bank_transaction_id,
        )
        return invoice

    async def reconcile_suggestions(self, invoice_id: UUID) -> ReconcileSuggestions:
        """
        List credit transactions that still have an amount to allocate, ranked
        against the invoice total.

        Ranking: exact match, then close match (within 5%), then transactions
        the invoice fits in, then most recent first.
        """
        invoice = await self._get_invoice(invoice_id)
        invoice_amount = Decimal(invoice.total_ttc)

        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.amount > 0,
                BankTransaction.is_reconciled.is_(False),
                BankTransaction.amount - BankTransaction.reconciled_amount > TOLERANCE,
            )
            .order_by(BankTransaction.transaction_date.desc())
            .limit(SUGGESTION_LIMIT)
        )
        transactions = result.scalars().all()

        candidates = []
        for tx in transactions:
            remaining = tx.remaining_amount
            if remaining <= TOLERANCE:
                continue
            diff = abs(remaining - invoice_amount)
            candidates.append(
                TransactionSuggestion(
                    transaction=tx,
                    remaining_amount=remaining,
                    amount_diff=diff,
                    is_exact_match=diff < TOLERANCE,
                    is_close_match=diff < invoice_amount * CLOSE_MATCH_RATIO,
                    invoice_fits_in_remaining=invoice_amount <= remaining + TOLERANCE,
                )
            )

        # Stable sorts: date desc first, then flags
        candidates.sort(key=lambda c: c.transaction.transaction_date, reverse=True)
        candidates.sort(
            key=lambda c: (
                not c.is_exact_match,
                not c.is_close_match,
                not c.invoice_fits_in_remaining,
            )
        )

        suggestions = ReconcileSuggestions(invoice=invoice)
        for candidate in candidates:
            if candidate.match_score > 0:
                suggestions.suggested.append(candidate)
            else:
                suggestions.others.append(candidate)

        logger.info(
            f"Reconcile suggestions for invoice {invoice.invoice_number}: "
            f"{len(suggestions.suggested)} suggested, {len(suggestions.others)} others",
            extra={"event": "reconcile_suggestions", "invoice_id": str(invoice.id)},
        )
        return suggestions
