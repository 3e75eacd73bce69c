"""
Public (token-based) Schemas

Responses for unauthenticated quote / invoice / shared project pages.
Internal fields (tenant ids, tokens of other resources) are never exposed.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.project import ProjectBoardResponse


class PublicCompany(BaseModel):
    """Issuer of the document (the tenant)."""
    name: str
    email: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    siret: Optional[str] = None
    vat_number: Optional[str] = None

    class Config:
        from_attributes = True


class PublicClient(BaseModel):
    company_name: str
    contact_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None

    class Config:
        from_attributes = True


class PublicLineItem(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    quantity: Decimal
    unit: Optional[str] = None
    unit_price_ht: Decimal
    vat_rate: Decimal
    total_ht: Decimal
    total_ttc: Decimal

    class Config:
        from_attributes = True


class PublicQuoteResponse(BaseModel):
    quote_number: str
    status: str
    issue_date: date
    validity_date: date
    is_expired: bool
    subtotal_ht: Decimal
    tax_amount: Decimal
    total_ttc: Decimal
    notes: Optional[str] = None
    terms_conditions: Optional[str] = None
    signed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    items: List[PublicLineItem]
    client: PublicClient
    company: Optional[PublicCompany] = None


class PublicInvoiceResponse(BaseModel):
    invoice_number: str
    status: str
    issue_date: date
    due_date: date
    subtotal_ht: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_ttc: Decimal
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    payment_date: Optional[date] = None
    items: List[PublicLineItem]
    client: PublicClient
    company: Optional[PublicCompany] = None


class QuoteRespondRequest(BaseModel):
    accept: bool


class QuoteRespondResponse(BaseModel):
    success: bool = True
    status: str
    message: str


class GuestAuthRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=255)
    guest_token: Optional[str] = Field(None, max_length=64)


class GuestInfo(BaseModel):
    email: str
    name: Optional[str] = None
    token: str

    class Config:
        from_attributes = True


class GuestAuthResponse(BaseModel):
    guest: GuestInfo
    project: ProjectBoardResponse


class GuestCardCreate(BaseModel):
    guest_token: str = Field(..., min_length=1, max_length=64)
    column_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    priority: str = Field("medium", pattern=r'^(low|medium|high|urgent)$')


class GuestCardMove(BaseModel):
    guest_token: str = Field(..., min_length=1, max_length=64)
    column_id: UUID
    position: int = Field(..., ge=0)
