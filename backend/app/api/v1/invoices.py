"""
Invoices API Endpoints

Invoice (facture) management scoped to the caller's tenant:
- list / create / get
- send by e-mail with a public link
- mark paid, optionally allocating a bank transaction
- reconcile suggestions among unreconciled bank transactions
- due date change, cancellation, PDF download
"""
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import get_db
from app.models.sales import Invoice
from app.schemas.sales import (
    InvoiceCreate,
    InvoiceResponse,
    InvoiceListResponse,
    MarkPaidRequest,
    DueDateUpdate,
    SendDocumentResponse,
)
from app.schemas.bank import (
    ReconcileSuggestionsResponse,
    SuggestionInvoice,
    TransactionSuggestionResponse,
)
from app.api.v1.deps import Tenancy
from app.services.email import email_service, public_document_url
from app.services.exceptions import ServiceError, to_http_exception
from app.services.pdf import render_document_pdf, get_pdf_filename
from app.services.reconciliation import ReconciliationService, TransactionSuggestion
from app.services.sales import SalesService

router = APIRouter()
logger = logging.getLogger(__name__)


def invoice_to_response(invoice: Invoice) -> InvoiceResponse:
    """Convert invoice model to response schema."""
    response = InvoiceResponse.model_validate(invoice)
    return response.model_copy(update={
        "client_name": invoice.client.company_name if invoice.client else None,
    })


def suggestion_to_response(suggestion: TransactionSuggestion) -> TransactionSuggestionResponse:
    tx = suggestion.transaction
    return TransactionSuggestionResponse(
        id=tx.id,
        external_id=tx.external_id,
        transaction_date=tx.transaction_date,
        value_date=tx.value_date,
        amount=tx.amount,
        reconciled_amount=tx.reconciled_amount,
        remaining_amount=suggestion.remaining_amount,
        is_partially_reconciled=suggestion.is_partially_reconciled,
        currency=tx.currency,
        label=tx.label,
        description=tx.description,
        counterparty_name=tx.counterparty_name,
        counterparty_account=tx.counterparty_account,
        reference=tx.reference,
        is_exact_match=suggestion.is_exact_match,
        is_close_match=suggestion.is_close_match,
        invoice_fits_in_remaining=suggestion.invoice_fits_in_remaining,
        amount_diff=suggestion.amount_diff,
        match_score=suggestion.match_score,
    )


@router.get("/invoices", response_model=InvoiceListResponse)
async def list_invoices(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
    status: str = Query(None, pattern=r'^(draft|sent|paid|overdue|cancelled)$'),
    client_id: UUID = Query(None),
):
    query = (
        select(Invoice)
        .options(selectinload(Invoice.items), selectinload(Invoice.client))
        .where(Invoice.tenant_id == ctx.tenant_id)
    )
    if status:
        query = query.where(Invoice.status == status)
    if client_id:
        query = query.where(Invoice.client_id == client_id)

    result = await db.execute(query.order_by(Invoice.created_at.desc()))
    invoices = result.scalars().all()

    return InvoiceListResponse(
        invoices=[invoice_to_response(i) for i in invoices],
        total=len(invoices),
    )


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    invoice_in: InvoiceCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a draft invoice. A prospect client becomes active."""
    service = SalesService(db, ctx.tenant_id)
    try:
        invoice = await service.create_invoice(invoice_in)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    invoice = await service.get_invoice(invoice.id)
    return invoice_to_response(invoice)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        invoice = await SalesService(db, ctx.tenant_id).get_invoice(invoice_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    return invoice_to_response(invoice)


@router.post("/invoices/{invoice_id}/send", response_model=SendDocumentResponse)
async def send_invoice(
    invoice_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Mark the invoice sent and e-mail its public link to the client."""
    service = SalesService(db, ctx.tenant_id)
    try:
        invoice = await service.send_invoice(invoice_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    email_sent = False
    if invoice.client and invoice.client.email:
        email_sent = await email_service.send_document_link(
            to_email=invoice.client.email,
            kind="invoice",
            number=invoice.invoice_number,
            token=invoice.public_token,
            company_name=ctx.tenant.name,
            contact_name=invoice.client.contact_name,
        )

    return SendDocumentResponse(
        public_url=public_document_url("invoice", invoice.public_token),
        email_sent=email_sent,
    )


@router.post("/invoices/{invoice_id}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: UUID,
    payment_in: MarkPaidRequest,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Mark an invoice as paid.

    With bank_transaction_id, the invoice total is allocated to that credit
    transaction. A concurrent allocation on the same transaction returns 409.
    """
    service = ReconciliationService(db, ctx.tenant_id)
    try:
        invoice = await service.mark_invoice_paid(
            invoice_id=invoice_id,
            payment_date=payment_in.payment_date,
            payment_method=payment_in.payment_method,
            payment_notes=payment_in.payment_notes,
            bank_transaction_id=payment_in.bank_transaction_id,
        )
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    invoice = await SalesService(db, ctx.tenant_id).get_invoice(invoice.id)
    return invoice_to_response(invoice)


@router.get("/invoices/{invoice_id}/reconcile-suggestions", response_model=ReconcileSuggestionsResponse)
async def reconcile_suggestions(
    invoice_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Unreconciled credit transactions ranked against the invoice total."""
    try:
        suggestions = await ReconciliationService(db, ctx.tenant_id).reconcile_suggestions(invoice_id)
    except ServiceError as exc:
        raise to_http_exception(exc)

    invoice = suggestions.invoice
    return ReconcileSuggestionsResponse(
        invoice=SuggestionInvoice(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            amount=invoice.total_ttc,
            client_name=invoice.client.company_name if invoice.client else None,
        ),
        suggested=[suggestion_to_response(s) for s in suggestions.suggested],
        others=[suggestion_to_response(s) for s in suggestions.others],
        total_unreconciled=suggestions.total_unreconciled,
    )


@router.put("/invoices/{invoice_id}/due-date", response_model=InvoiceResponse)
async def update_due_date(
    invoice_id: UUID,
    due_in: DueDateUpdate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Change the due date. Refused for paid and cancelled invoices."""
    service = SalesService(db, ctx.tenant_id)
    try:
        invoice = await service.update_due_date(invoice_id, due_in.due_date)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    invoice = await service.get_invoice(invoice.id)
    return invoice_to_response(invoice)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    service = SalesService(db, ctx.tenant_id)
    try:
        invoice = await service.cancel_invoice(invoice_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    invoice = await service.get_invoice(invoice.id)
    return invoice_to_response(invoice)


@router.get("/invoices/{invoice_id}/pdf")
async def download_invoice_pdf(
    invoice_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        invoice = await SalesService(db, ctx.tenant_id).get_invoice(invoice_id)
    except ServiceError as exc:
        raise to_http_exception(exc)

    pdf_bytes = render_document_pdf(invoice, ctx.tenant)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{get_pdf_filename(invoice)}"'},
    )
