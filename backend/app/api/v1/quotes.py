"""
Quotes API Endpoints

Quote (devis) management scoped to the caller's tenant:
- list / create / get
- status changes (sent, accepted, rejected)
- send by e-mail with a public link
- convert an accepted quote to an invoice
- PDF download
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
from app.models.sales import Quote, Invoice
from app.schemas.sales import (
    QuoteCreate,
    QuoteStatusUpdate,
    QuoteResponse,
    QuoteListResponse,
    InvoiceResponse,
    SendDocumentResponse,
)
from app.api.v1.deps import Tenancy
from app.api.v1.invoices import invoice_to_response
from app.services.email import email_service, public_document_url
from app.services.exceptions import ServiceError, to_http_exception
from app.services.pdf import render_document_pdf, get_pdf_filename
from app.services.sales import SalesService

router = APIRouter()
logger = logging.getLogger(__name__)


def quote_to_response(quote: Quote, invoice_id: UUID = None) -> QuoteResponse:
    """Convert quote model to response schema."""
    response = QuoteResponse.model_validate(quote)
    return response.model_copy(update={
        "client_name": quote.client.company_name if quote.client else None,
        "invoice_id": invoice_id,
    })


@router.get("/quotes", response_model=QuoteListResponse)
async def list_quotes(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
    status: str = Query(None, pattern=r'^(draft|sent|accepted|rejected|expired)$'),
    client_id: UUID = Query(None),
):
    query = (
        select(Quote)
        .options(selectinload(Quote.items), selectinload(Quote.client))
        .where(Quote.tenant_id == ctx.tenant_id)
    )
    if status:
        query = query.where(Quote.status == status)
    if client_id:
        query = query.where(Quote.client_id == client_id)

    result = await db.execute(query.order_by(Quote.created_at.desc()))
    quotes = result.scalars().all()

    # Invoices created from these quotes
    converted = {}
    if quotes:
        inv_result = await db.execute(
            select(Invoice.quote_id, Invoice.id).where(
                Invoice.tenant_id == ctx.tenant_id,
                Invoice.quote_id.in_([q.id for q in quotes]),
            )
        )
        converted = {quote_id: invoice_id for quote_id, invoice_id in inv_result.all()}

    return QuoteListResponse(
        quotes=[quote_to_response(q, converted.get(q.id)) for q in quotes],
        total=len(quotes),
    )


@router.post("/quotes", response_model=QuoteResponse, status_code=201)
async def create_quote(
    quote_in: QuoteCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    service = SalesService(db, ctx.tenant_id)
    try:
        quote = await service.create_quote(quote_in)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    quote = await service.get_quote(quote.id)
    return quote_to_response(quote)


@router.get("/quotes/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    service = SalesService(db, ctx.tenant_id)
    try:
        quote = await service.get_quote(quote_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    return quote_to_response(quote, await service.get_quote_invoice_id(quote.id))


@router.patch("/quotes/{quote_id}/status", response_model=QuoteResponse)
async def update_quote_status(
    quote_id: UUID,
    status_in: QuoteStatusUpdate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Change a quote's status from the back office.

    - sent: generates the public token and stamps sent_at
    - accepted: stamps signed_at and converts the client if it is a prospect
    - rejected: stamps rejected_at
    """
    service = SalesService(db, ctx.tenant_id)
    try:
        quote = await service.update_quote_status(quote_id, status_in.status)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    quote = await service.get_quote(quote.id)
    return quote_to_response(quote, await service.get_quote_invoice_id(quote.id))


@router.post("/quotes/{quote_id}/send", response_model=SendDocumentResponse)
async def send_quote(
    quote_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Mark the quote sent and e-mail its public link to the client."""
    service = SalesService(db, ctx.tenant_id)
    try:
        quote = await service.send_quote(quote_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    email_sent = False
    if quote.client and quote.client.email:
        email_sent = await email_service.send_document_link(
            to_email=quote.client.email,
            kind="quote",
            number=quote.quote_number,
            token=quote.public_token,
            company_name=ctx.tenant.name,
            contact_name=quote.client.contact_name,
        )

    return SendDocumentResponse(
        public_url=public_document_url("quote", quote.public_token),
        email_sent=email_sent,
    )


@router.post("/quotes/{quote_id}/convert-to-invoice", response_model=InvoiceResponse, status_code=201)
async def convert_quote_to_invoice(
    quote_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create an invoice from an accepted quote."""
    service = SalesService(db, ctx.tenant_id)
    try:
        invoice = await service.convert_quote_to_invoice(quote_id)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    invoice = await service.get_invoice(invoice.id)
    return invoice_to_response(invoice)


@router.get("/quotes/{quote_id}/pdf")
async def download_quote_pdf(
    quote_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    service = SalesService(db, ctx.tenant_id)
    try:
        quote = await service.get_quote(quote_id)
    except ServiceError as exc:
        raise to_http_exception(exc)

    pdf_bytes = render_document_pdf(quote, ctx.tenant)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{get_pdf_filename(quote)}"'},
    )
