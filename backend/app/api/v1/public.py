"""
Public API Endpoints

No authentication: access is granted by the opaque token in the URL.
Every endpoint is rate-limited per client IP.

- GET  /public/quote/{token}           view a quote (counts the view)
- POST /public/quote/{token}/respond   accept or decline a sent quote
- GET  /public/invoice/{token}         view an invoice (counts the view)
- GET  /public/project/{token}         view a shared board
- POST /public/project/{token}/auth    guest authentication on a shared board
- POST /public/project/{token}/cards   add a card (guest token required)
- POST /public/project/{token}/cards/{card_id}/move   move a card (guest token required)
"""
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import get_db
from app.core.rate_limit import check_rate_limit
from app.models.sales import Quote, Invoice, QuoteStatus
from app.models.tenant import TenantMember
from app.core.roles import MemberRole
from app.schemas.public import (
    PublicQuoteResponse,
    PublicInvoiceResponse,
    PublicClient,
    PublicCompany,
    PublicLineItem,
    QuoteRespondRequest,
    QuoteRespondResponse,
    GuestAuthRequest,
    GuestAuthResponse,
    GuestInfo,
    GuestCardCreate,
    GuestCardMove,
)
from app.schemas.project import CardResponse, ProjectBoardResponse
from app.services.email import email_service
from app.services.exceptions import ServiceError, to_http_exception
from app.services.public_access import (
    PublicTokenGateway,
    PublicResourceType,
    QuoteExpiredError,
    is_quote_expired,
)

router = APIRouter()
logger = logging.getLogger(__name__)


async def _company(gateway: PublicTokenGateway, tenant_id) -> PublicCompany:
    tenant = await gateway.get_tenant(tenant_id)
    return PublicCompany.model_validate(tenant) if tenant else None


def _public_quote(quote: Quote, company: PublicCompany) -> PublicQuoteResponse:
    return PublicQuoteResponse(
        quote_number=quote.quote_number,
        status=quote.status,
        issue_date=quote.issue_date,
        validity_date=quote.validity_date,
        is_expired=quote.status == QuoteStatus.EXPIRED.value or is_quote_expired(quote),
        subtotal_ht=quote.subtotal_ht,
        tax_amount=quote.tax_amount,
        total_ttc=quote.total_ttc,
        notes=quote.notes,
        terms_conditions=quote.terms_conditions,
        signed_at=quote.signed_at,
        rejected_at=quote.rejected_at,
        items=[PublicLineItem.model_validate(i) for i in quote.items],
        client=PublicClient.model_validate(quote.client),
        company=company,
    )


def _public_invoice(invoice: Invoice, company: PublicCompany) -> PublicInvoiceResponse:
    return PublicInvoiceResponse(
        invoice_number=invoice.invoice_number,
        status=invoice.status,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        subtotal_ht=invoice.subtotal_ht,
        tax_amount=invoice.tax_amount,
        discount_amount=invoice.discount_amount,
        total_ttc=invoice.total_ttc,
        notes=invoice.notes,
        payment_terms=invoice.payment_terms,
        payment_date=invoice.payment_date,
        items=[PublicLineItem.model_validate(i) for i in invoice.items],
        client=PublicClient.model_validate(invoice.client),
        company=company,
    )


@router.get("/public/quote/{token}", response_model=PublicQuoteResponse)
async def get_public_quote(
    token: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await check_rate_limit("public_quote", request)
    gateway = PublicTokenGateway(db)
    try:
        quote = await gateway.get_by_public_token(PublicResourceType.QUOTE, token)
    except ServiceError as exc:
        raise to_http_exception(exc)

    await gateway.record_view(PublicResourceType.QUOTE, quote)
    await db.commit()

    return _public_quote(quote, await _company(gateway, quote.tenant_id))


@router.post("/public/quote/{token}/respond", response_model=QuoteRespondResponse)
async def respond_to_quote(
    token: str,
    respond_in: QuoteRespondRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Accept or decline a sent quote.

    Quotes past their validity date are moved to expired and the answer is refused.
    """
    await check_rate_limit("public_quote_respond", request)
    gateway = PublicTokenGateway(db)
    try:
        quote = await gateway.respond_to_quote(token, respond_in.accept)
    except QuoteExpiredError as exc:
        # Keep the expired status
        await db.commit()
        raise to_http_exception(exc)
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    await _notify_owner(db, quote, respond_in.accept)

    if respond_in.accept:
        message = "Thank you! Your acceptance has been recorded. We will contact you shortly."
    else:
        message = "Your refusal has been recorded. Feel free to contact us if you have any questions."
    return QuoteRespondResponse(status=quote.status, message=message)


async def _notify_owner(db: AsyncSession, quote: Quote, accepted: bool) -> None:
    """E-mail the tenant owners about the answer. Failures are logged only."""
    result = await db.execute(
        select(TenantMember)
        .options(selectinload(TenantMember.user))
        .where(
            TenantMember.tenant_id == quote.tenant_id,
            TenantMember.role == MemberRole.OWNER,
        )
    )
    for member in result.scalars().all():
        await email_service.send_quote_response_notification(
            to_email=member.user.email,
            quote_number=quote.quote_number,
            client_name=quote.client.company_name,
            accepted=accepted,
        )


@router.get("/public/invoice/{token}", response_model=PublicInvoiceResponse)
async def get_public_invoice(
    token: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await check_rate_limit("public_invoice", request)
    gateway = PublicTokenGateway(db)
    try:
        invoice = await gateway.get_by_public_token(PublicResourceType.INVOICE, token)
    except ServiceError as exc:
        raise to_http_exception(exc)

    await gateway.record_view(PublicResourceType.INVOICE, invoice)
    await db.commit()

    return _public_invoice(invoice, await _company(gateway, invoice.tenant_id))


@router.get("/public/project/{token}", response_model=ProjectBoardResponse)
async def get_public_project(
    token: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await check_rate_limit("public_project", request)
    gateway = PublicTokenGateway(db)
    try:
        project = await gateway.get_by_public_token(PublicResourceType.PROJECT, token)
    except ServiceError as exc:
        raise to_http_exception(exc)
    return ProjectBoardResponse.model_validate(project)


@router.post("/public/project/{token}/auth", response_model=GuestAuthResponse)
async def authenticate_guest(
    token: str,
    auth_in: GuestAuthRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Identify a guest on a shared board by guest token or invited e-mail."""
    await check_rate_limit("public_project_auth", request)
    gateway = PublicTokenGateway(db)
    try:
        project, guest = await gateway.authenticate_guest(
            token,
            email=auth_in.email,
            name=auth_in.name,
            guest_token=auth_in.guest_token,
        )
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()

    return GuestAuthResponse(
        guest=GuestInfo.model_validate(guest),
        project=ProjectBoardResponse.model_validate(project),
    )


@router.post("/public/project/{token}/cards", response_model=CardResponse, status_code=201)
async def create_guest_card(
    token: str,
    card_in: GuestCardCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Add a card to a shared board as an authenticated guest."""
    await check_rate_limit("public_project_edit", request)
    gateway = PublicTokenGateway(db)
    try:
        card = await gateway.create_guest_card(
            token,
            card_in.guest_token,
            column_id=card_in.column_id,
            title=card_in.title,
            description=card_in.description,
            priority=card_in.priority,
        )
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return CardResponse.model_validate(card)


@router.post("/public/project/{token}/cards/{card_id}/move", response_model=CardResponse)
async def move_guest_card(
    token: str,
    card_id: UUID,
    move_in: GuestCardMove,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Move a card to another column or position as an authenticated guest."""
    await check_rate_limit("public_project_edit", request)
    gateway = PublicTokenGateway(db)
    try:
        card = await gateway.move_guest_card(
            token,
            move_in.guest_token,
            card_id=card_id,
            column_id=move_in.column_id,
            position=move_in.position,
        )
    except ServiceError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return CardResponse.model_validate(card)
