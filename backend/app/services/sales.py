"""
Sales Service

Quote and invoice workflows:
- creation with line totals and sequential numbering
- quote status changes from the back office
- quote -> invoice conversion
- sending (public token generation)
- invoice due date changes and cancellation

Creating an invoice runs the prospect check for its client; accepting or
converting a quote converts the client unconditionally.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.models.client import Client
from app.models.sales import (
    Quote,
    QuoteItem,
    QuoteStatus,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
)
from app.schemas.sales import QuoteCreate, InvoiceCreate
from app.services.exceptions import InvalidStateError, NotFoundError
from app.services.numbering import generate_quote_number, generate_invoice_number
from app.services.prospects import ProspectService
from app.services.public_access import generate_public_token

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def line_totals(quantity: Decimal, unit_price_ht: Decimal, vat_rate: Decimal) -> Tuple[Decimal, Decimal]:
    """Return (total_ht, total_ttc) of a line, rounded to the cent."""
    total_ht = (Decimal(quantity) * Decimal(unit_price_ht)).quantize(CENT, rounding=ROUND_HALF_UP)
    vat = (total_ht * Decimal(vat_rate) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return total_ht, total_ht + vat


def document_totals(items) -> Tuple[Decimal, Decimal, Decimal]:
    """Return (subtotal_ht, tax_amount, total_ttc) over line items."""
    subtotal = sum((Decimal(i.total_ht) for i in items), Decimal("0"))
    total = sum((Decimal(i.total_ttc) for i in items), Decimal("0"))
    return subtotal, total - subtotal, total


class SalesService:
    """Service for quotes and invoices, scoped to one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_client(self, client_id: UUID) -> Client:
        result = await self.db.execute(
            select(Client).where(
                Client.id == client_id,
                Client.tenant_id == self.tenant_id,
            )
        )
        client = result.scalar_one_or_none()
        if not client:
            raise NotFoundError("Client not found", code="CLIENT_NOT_FOUND")
        return client

    async def get_quote(self, quote_id: UUID) -> Quote:
        result = await self.db.execute(
            select(Quote)
            .options(selectinload(Quote.items), selectinload(Quote.client))
            .where(
                Quote.id == quote_id,
                Quote.tenant_id == self.tenant_id,
            )
            .execution_options(populate_existing=True)
        )
        quote = result.scalar_one_or_none()
        if not quote:
            raise NotFoundError("Quote not found", code="QUOTE_NOT_FOUND")
        return quote

    async def get_invoice(self, invoice_id: UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.items), selectinload(Invoice.client))
            .where(
                Invoice.id == invoice_id,
                Invoice.tenant_id == self.tenant_id,
            )
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice not found", code="INVOICE_NOT_FOUND")
        return invoice

    async def get_quote_invoice_id(self, quote_id: UUID) -> Optional[UUID]:
        """Id of the invoice a quote was converted to, if any."""
        result = await self.db.execute(
            select(Invoice.id)
            .where(Invoice.quote_id == quote_id, Invoice.tenant_id == self.tenant_id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def create_quote(self, data: QuoteCreate) -> Quote:
        client = await self._get_client(data.client_id)
        issue_date = data.issue_date or date.today()

        items: List[QuoteItem] = []
        for position, line in enumerate(data.items, start=1):
            total_ht, total_ttc = line_totals(line.quantity, line.unit_price_ht, line.vat_rate)
            items.append(
                QuoteItem(
                    position=position,
                    title=line.title,
                    description=line.description,
                    quantity=line.quantity,
                    unit=line.unit,
                    unit_price_ht=line.unit_price_ht,
                    vat_rate=line.vat_rate,
                    total_ht=total_ht,
                    total_ttc=total_ttc,
                )
            )
        subtotal, tax, total = document_totals(items)

        quote = Quote(
            tenant_id=self.tenant_id,
            client_id=client.id,
            quote_number=await generate_quote_number(self.tenant_id, self.db),
            status=QuoteStatus.DRAFT.value,
            issue_date=issue_date,
            validity_date=data.validity_date or issue_date + timedelta(days=settings.QUOTE_VALIDITY_DAYS),
            subtotal_ht=subtotal,
            tax_amount=tax,
            total_ttc=total,
            notes=data.notes,
            terms_conditions=data.terms_conditions,
            items=items,
        )
        self.db.add(quote)
        await self.db.flush()

        logger.info(
            f"Quote {quote.quote_number} created",
            extra={"event": "quote_created", "quote_id": str(quote.id), "tenant_id": str(self.tenant_id)},
        )
        return quote

    async def update_quote_status(self, quote_id: UUID, status: str) -> Quote:
        """
        Manual status change: sent, accepted or rejected.

        accepted / rejected / expired quotes are final.
        """
        quote = await self.get_quote(quote_id)
        final = {QuoteStatus.ACCEPTED.value, QuoteStatus.REJECTED.value, QuoteStatus.EXPIRED.value}
        if quote.status in final:
            raise InvalidStateError(
                f"Quote is already {quote.status}",
                code="QUOTE_NOT_MODIFIABLE",
            )

        now = datetime.now(timezone.utc)
        if status == QuoteStatus.SENT.value:
            self._mark_sent(quote, now)
        elif status == QuoteStatus.ACCEPTED.value:
            quote.status = QuoteStatus.ACCEPTED.value
            quote.signed_at = now
        elif status == QuoteStatus.REJECTED.value:
            quote.status = QuoteStatus.REJECTED.value
            quote.rejected_at = now
        else:
            raise InvalidStateError(f"Unsupported status: {status}", code="INVALID_STATUS")

        await self.db.flush()

        if quote.status == QuoteStatus.ACCEPTED.value:
            await ProspectService(self.db, self.tenant_id).convert_prospect_to_client(quote.client_id)

        return quote

    def _mark_sent(self, document, now: datetime) -> None:
        if not document.public_token:
            document.public_token = generate_public_token()
        if document.status == "draft":
            document.status = "sent"
        if document.sent_at is None:
            document.sent_at = now

    async def send_quote(self, quote_id: UUID) -> Quote:
        """Ensure the quote has a public token and is in sent status."""
        quote = await self.get_quote(quote_id)
        if quote.status not in (QuoteStatus.DRAFT.value, QuoteStatus.SENT.value):
            raise InvalidStateError(
                f"A {quote.status} quote cannot be sent",
                code="QUOTE_NOT_SENDABLE",
            )
        self._mark_sent(quote, datetime.now(timezone.utc))
        await self.db.flush()
        return quote

    async def convert_quote_to_invoice(self, quote_id: UUID) -> Invoice:
        """
        Create an invoice from an accepted quote.

        Raises:
            NotFoundError: quote not found
            InvalidStateError: quote not accepted, or already converted
        """
        quote = await self.get_quote(quote_id)
        if quote.status != QuoteStatus.ACCEPTED.value:
            raise InvalidStateError(
                "Only accepted quotes can be converted to an invoice",
                code="QUOTE_NOT_ACCEPTED",
            )
        if await self.get_quote_invoice_id(quote.id):
            raise InvalidStateError(
                "This quote has already been converted to an invoice",
                code="QUOTE_ALREADY_CONVERTED",
            )

        issue_date = date.today()
        items = [
            InvoiceItem(
                position=item.position,
                description=f"{item.title}\n{item.description}" if item.description else item.title,
                quantity=item.quantity,
                unit=item.unit,
                unit_price_ht=item.unit_price_ht,
                vat_rate=item.vat_rate,
                total_ht=item.total_ht,
                total_ttc=item.total_ttc,
            )
            for item in quote.items
        ]
        invoice = Invoice(
            tenant_id=self.tenant_id,
            client_id=quote.client_id,
            quote_id=quote.id,
            invoice_number=await generate_invoice_number(self.tenant_id, self.db),
            status=InvoiceStatus.DRAFT.value,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=settings.INVOICE_PAYMENT_DAYS),
            subtotal_ht=quote.subtotal_ht,
            tax_amount=quote.tax_amount,
            total_ttc=quote.total_ttc,
            notes=quote.notes,
            items=items,
        )
        self.db.add(invoice)
        await self.db.flush()

        await ProspectService(self.db, self.tenant_id).convert_prospect_to_client(quote.client_id)

        logger.info(
            f"Quote {quote.quote_number} converted to invoice {invoice.invoice_number}",
            extra={"event": "quote_converted", "quote_id": str(quote.id), "invoice_id": str(invoice.id)},
        )
        return invoice

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def create_invoice(self, data: InvoiceCreate) -> Invoice:
        client = await self._get_client(data.client_id)
        issue_date = data.issue_date or date.today()

        items: List[InvoiceItem] = []
        for position, line in enumerate(data.items, start=1):
            total_ht, total_ttc = line_totals(line.quantity, line.unit_price_ht, line.vat_rate)
            items.append(
                InvoiceItem(
                    position=position,
                    description=line.description,
                    quantity=line.quantity,
                    unit=line.unit,
                    unit_price_ht=line.unit_price_ht,
                    vat_rate=line.vat_rate,
                    total_ht=total_ht,
                    total_ttc=total_ttc,
                )
            )
        subtotal, tax, total = document_totals(items)
        discount = data.discount_amount or Decimal("0")

        invoice = Invoice(
            tenant_id=self.tenant_id,
            client_id=client.id,
            invoice_number=await generate_invoice_number(self.tenant_id, self.db),
            status=InvoiceStatus.DRAFT.value,
            issue_date=issue_date,
            due_date=data.due_date or issue_date + timedelta(days=settings.INVOICE_PAYMENT_DAYS),
            subtotal_ht=subtotal,
            tax_amount=tax,
            discount_amount=discount,
            total_ttc=max(total - discount, Decimal("0")),
            notes=data.notes,
            payment_terms=data.payment_terms,
            items=items,
        )
        self.db.add(invoice)
        await self.db.flush()

        await ProspectService(self.db, self.tenant_id).check_and_convert_prospect(client.id)

        logger.info(
            f"Invoice {invoice.invoice_number} created",
            extra={"event": "invoice_created", "invoice_id": str(invoice.id), "tenant_id": str(self.tenant_id)},
        )
        return invoice

    async def send_invoice(self, invoice_id: UUID) -> Invoice:
        """Ensure the invoice has a public token; a draft moves to sent."""
        invoice = await self.get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvalidStateError("Cancelled invoices cannot be sent", code="INVOICE_CANCELLED")
        self._mark_sent(invoice, datetime.now(timezone.utc))
        await self.db.flush()
        return invoice

    async def update_due_date(self, invoice_id: UUID, due_date: date) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        if invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value):
            raise InvalidStateError(
                f"The due date of a {invoice.status} invoice cannot be changed",
                code="INVOICE_NOT_MODIFIABLE",
            )
        invoice.due_date = due_date
        await self.db.flush()
        return invoice

    async def cancel_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID.value:
            raise InvalidStateError("Paid invoices cannot be cancelled", code="INVOICE_ALREADY_PAID")
        invoice.status = InvoiceStatus.CANCELLED.value
        await self.db.flush()
        return invoice
