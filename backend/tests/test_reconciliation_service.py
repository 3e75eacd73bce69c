"""
Tests for the reconciliation ledger.

Covers:
- allocation() arithmetic and the one-cent tolerance
- mark_invoice_paid with and without a bank transaction
- partial allocation of one transaction across several invoices
- refusal cases (paid / cancelled invoice, debit, foreign transaction)
- concurrent modification of the transaction
- reconcile_suggestions ranking
"""
import pytest
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select, update, func

from app.models.bank import BankTransaction, InvoiceBankReconciliation
from app.models.sales import Invoice, InvoiceStatus
from app.services.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.services.reconciliation import (
    ReconciliationService,
    allocation,
)


class TestAllocation:
    """Pure allocation arithmetic."""

    def test_partial_allocation_is_not_reconciled(self):
        result = allocation(Decimal("100.00"), Decimal("0"), Decimal("60.00"))
        assert result.reconciled_amount == Decimal("60.00")
        assert result.is_reconciled is False

    def test_exact_completion_is_reconciled(self):
        result = allocation(Decimal("100.00"), Decimal("60.00"), Decimal("40.00"))
        assert result.reconciled_amount == Decimal("100.00")
        assert result.is_reconciled is True

    def test_within_one_cent_is_reconciled(self):
        result = allocation(Decimal("100.00"), Decimal("60.00"), Decimal("39.99"))
        assert result.is_reconciled is True

    def test_two_cents_short_is_not_reconciled(self):
        result = allocation(Decimal("100.00"), Decimal("60.00"), Decimal("39.98"))
        assert result.is_reconciled is False

    def test_over_allocation_is_accepted(self):
        result = allocation(Decimal("50.00"), Decimal("0"), Decimal("80.00"))
        assert result.reconciled_amount == Decimal("80.00")
        assert result.is_reconciled is True

    def test_none_reconciled_treated_as_zero(self):
        result = allocation(Decimal("10.00"), None, Decimal("10.00"))
        assert result.reconciled_amount == Decimal("10.00")
        assert result.is_reconciled is True


class TestMarkInvoicePaid:
    """ReconciliationService.mark_invoice_paid"""

    @pytest.mark.asyncio
    async def test_mark_paid_without_transaction(self, db_session, test_tenant, prospect, make_invoice):
        invoice = await make_invoice(prospect, Decimal("120.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        paid = await service.mark_invoice_paid(
            invoice.id,
            payment_date=date(2026, 3, 2),
            payment_method="cheque",
        )
        await db_session.commit()

        assert paid.status == InvoiceStatus.PAID.value
        assert paid.payment_date == date(2026, 3, 2)
        assert paid.payment_method == "cheque"

        count = await db_session.scalar(select(func.count(InvoiceBankReconciliation.id)))
        assert count == 0

    @pytest.mark.asyncio
    async def test_payment_date_defaults_to_today(self, db_session, test_tenant, prospect, make_invoice):
        invoice = await make_invoice(prospect, Decimal("10.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        paid = await service.mark_invoice_paid(invoice.id)

        assert paid.payment_date == date.today()

    @pytest.mark.asyncio
    async def test_batch_payment_split_across_two_invoices(
        self, db_session, test_tenant, prospect, make_invoice, make_transaction
    ):
        """One 100 EUR transfer settles a 60 EUR and a 40 EUR invoice."""
        transaction = await make_transaction(Decimal("100.00"))
        first = await make_invoice(prospect, Decimal("60.00"))
        second = await make_invoice(prospect, Decimal("40.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        await service.mark_invoice_paid(first.id, bank_transaction_id=transaction.id)
        await db_session.commit()

        assert transaction.reconciled_amount == Decimal("60.00")
        assert transaction.is_reconciled is False
        assert transaction.invoice_id == first.id

        await service.mark_invoice_paid(second.id, bank_transaction_id=transaction.id)
        await db_session.commit()

        assert transaction.reconciled_amount == Decimal("100.00")
        assert transaction.is_reconciled is True
        # Legacy pointer keeps the first invoice
        assert transaction.invoice_id == first.id

        result = await db_session.execute(
            select(InvoiceBankReconciliation.invoice_id, InvoiceBankReconciliation.amount)
            .where(InvoiceBankReconciliation.bank_transaction_id == transaction.id)
        )
        allocations = {invoice_id: amount for invoice_id, amount in result.all()}
        assert allocations == {first.id: Decimal("60.00"), second.id: Decimal("40.00")}

    @pytest.mark.asyncio
    async def test_over_allocation_is_recorded(
        self, db_session, test_tenant, prospect, make_invoice, make_transaction
    ):
        transaction = await make_transaction(Decimal("50.00"))
        invoice = await make_invoice(prospect, Decimal("80.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        await service.mark_invoice_paid(invoice.id, bank_transaction_id=transaction.id)
        await db_session.commit()

        assert transaction.reconciled_amount == Decimal("80.00")
        assert transaction.is_reconciled is True
        assert transaction.remaining_amount == Decimal("-30.00")

    @pytest.mark.asyncio
    async def test_each_allocation_bumps_version(
        self, db_session, test_tenant, prospect, make_invoice, make_transaction
    ):
        transaction = await make_transaction(Decimal("300.00"))
        initial_version = transaction.version
        invoice = await make_invoice(prospect, Decimal("100.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        await service.mark_invoice_paid(invoice.id, bank_transaction_id=transaction.id)
        await db_session.commit()

        assert transaction.version == initial_version + 1

    @pytest.mark.asyncio
    async def test_already_paid_invoice_is_refused(self, db_session, test_tenant, prospect, make_invoice):
        invoice = await make_invoice(prospect, Decimal("10.00"), status=InvoiceStatus.PAID.value)
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(InvalidStateError) as exc_info:
            await service.mark_invoice_paid(invoice.id)
        assert exc_info.value.code == "INVOICE_ALREADY_PAID"

    @pytest.mark.asyncio
    async def test_cancelled_invoice_is_refused(self, db_session, test_tenant, prospect, make_invoice):
        invoice = await make_invoice(prospect, Decimal("10.00"), status=InvoiceStatus.CANCELLED.value)
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(InvalidStateError) as exc_info:
            await service.mark_invoice_paid(invoice.id)
        assert exc_info.value.code == "INVOICE_CANCELLED"

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, db_session, test_tenant):
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(NotFoundError) as exc_info:
            await service.mark_invoice_paid(uuid.uuid4())
        assert exc_info.value.code == "INVOICE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_debit_transaction_is_refused(
        self, db_session, test_tenant, prospect, make_invoice, make_transaction
    ):
        transaction = await make_transaction(Decimal("-100.00"))
        invoice = await make_invoice(prospect, Decimal("100.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(ValidationError) as exc_info:
            await service.mark_invoice_paid(invoice.id, bank_transaction_id=transaction.id)
        assert exc_info.value.code == "NOT_A_CREDIT_TRANSACTION"
        assert invoice.status == InvoiceStatus.SENT.value

    @pytest.mark.asyncio
    async def test_transaction_of_another_tenant_is_not_found(
        self, db_session, test_tenant, other_tenant, prospect, make_invoice, make_transaction
    ):
        transaction = await make_transaction(Decimal("100.00"), tenant_id=other_tenant.id)
        invoice = await make_invoice(prospect, Decimal("100.00"))
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(NotFoundError) as exc_info:
            await service.mark_invoice_paid(invoice.id, bank_transaction_id=transaction.id)
        assert exc_info.value.code == "BANK_TRANSACTION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_concurrent_modification_persists_nothing(
        self, db_session, test_tenant, prospect, make_invoice, make_transaction, monkeypatch
    ):
        """A write to the transaction between read and flush makes the allocation fail."""
        transaction = await make_transaction(Decimal("100.00"))
        invoice = await make_invoice(prospect, Decimal("60.00"))
        transaction_id, invoice_id = transaction.id, invoice.id

        original_load = ReconciliationService._load_transaction

        async def load_then_concurrent_write(self, bank_transaction_id):
            loaded = await original_load(self, bank_transaction_id)
            table = BankTransaction.__table__
            await self.db.execute(
                update(table)
                .where(table.c.id == bank_transaction_id)
                .values(version=table.c.version + 1)
            )
            return loaded

        monkeypatch.setattr(ReconciliationService, "_load_transaction", load_then_concurrent_write)
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(ConflictError) as exc_info:
            await service.mark_invoice_paid(invoice_id, bank_transaction_id=transaction_id)
        assert exc_info.value.code == "RECONCILIATION_CONFLICT"
        assert exc_info.value.status_code == 409

        status = await db_session.scalar(select(Invoice.status).where(Invoice.id == invoice_id))
        assert status == InvoiceStatus.SENT.value

        reconciled = await db_session.scalar(
            select(BankTransaction.reconciled_amount).where(BankTransaction.id == transaction_id)
        )
        assert reconciled == Decimal("0")

        count = await db_session.scalar(select(func.count(InvoiceBankReconciliation.id)))
        assert count == 0


class TestReconcileSuggestions:
    """ReconciliationService.reconcile_suggestions"""

    @pytest.mark.asyncio
    async def test_ranking_and_filtering(
        self, db_session, test_tenant, prospect, make_invoice, make_transaction
    ):
        today = date.today()
        invoice = await make_invoice(prospect, Decimal("120.00"))

        exact_old = await make_transaction(Decimal("120.00"), transaction_date=today - timedelta(days=10))
        exact_partial = await make_transaction(
            Decimal("200.00"), reconciled_amount=Decimal("80.00"), transaction_date=today - timedelta(days=2)
        )
        close = await make_transaction(Decimal("125.00"), transaction_date=today - timedelta(days=1))
        fits = await make_transaction(Decimal("500.00"), transaction_date=today)
        too_small = await make_transaction(Decimal("50.00"), transaction_date=today)
        # Excluded: fully allocated and debit
        await make_transaction(Decimal("100.00"), reconciled_amount=Decimal("100.00"))
        await make_transaction(Decimal("-120.00"))

        service = ReconciliationService(db_session, test_tenant.id)
        suggestions = await service.reconcile_suggestions(invoice.id)

        assert [s.transaction.id for s in suggestions.suggested] == [
            exact_partial.id,
            exact_old.id,
            close.id,
            fits.id,
        ]
        assert [s.match_score for s in suggestions.suggested] == [100, 100, 80, 60]
        assert [s.transaction.id for s in suggestions.others] == [too_small.id]
        assert suggestions.others[0].match_score == 0
        assert suggestions.total_unreconciled == 5

        partial = suggestions.suggested[0]
        assert partial.remaining_amount == Decimal("120.00")
        assert partial.is_partially_reconciled is True
        assert suggestions.suggested[1].is_partially_reconciled is False

    @pytest.mark.asyncio
    async def test_other_tenant_transactions_are_ignored(
        self, db_session, test_tenant, other_tenant, prospect, make_invoice, make_transaction
    ):
        invoice = await make_invoice(prospect, Decimal("120.00"))
        await make_transaction(Decimal("120.00"), tenant_id=other_tenant.id)

        service = ReconciliationService(db_session, test_tenant.id)
        suggestions = await service.reconcile_suggestions(invoice.id)

        assert suggestions.total_unreconciled == 0

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, db_session, test_tenant):
        service = ReconciliationService(db_session, test_tenant.id)

        with pytest.raises(NotFoundError):
            await service.reconcile_suggestions(uuid.uuid4())
