"""
Sales Schemas

Pydantic schemas for quotes (devis) and invoices (factures).
Money fields are Decimal and serialized as strings.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field


# ============================================================================
# Quote Schemas
# ============================================================================

class QuoteItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit: Optional[str] = Field(None, max_length=30)
    unit_price_ht: Decimal = Field(..., ge=0)
    vat_rate: Decimal = Field(default=Decimal("20"), ge=0, le=100)


class QuoteItemResponse(BaseModel):
    id: UUID
    position: int
    title: str
    description: Optional[str] = None
    quantity: Decimal
    unit: Optional[str] = None
    unit_price_ht: Decimal
    vat_rate: Decimal
    total_ht: Decimal
    total_ttc: Decimal

    class Config:
        from_attributes = True


class QuoteCreate(BaseModel):
    """Schema for creating a quote. validity_date defaults to issue_date + QUOTE_VALIDITY_DAYS."""
    client_id: UUID
    issue_date: Optional[date] = None
    validity_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=5000)
    terms_conditions: Optional[str] = Field(None, max_length=10000)
    items: List[QuoteItemCreate] = Field(..., min_length=1)


class QuoteStatusUpdate(BaseModel):
    """Manual status change from the back office."""
    status: str = Field(..., pattern=r'^(sent|accepted|rejected)$')


class QuoteResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    client_id: UUID
    client_name: Optional[str] = None
    quote_number: str
    status: str
    issue_date: date
    validity_date: date
    subtotal_ht: Decimal
    tax_amount: Decimal
    total_ttc: Decimal
    notes: Optional[str] = None
    terms_conditions: Optional[str] = None
    public_token: Optional[str] = None
    view_count: int = 0
    first_viewed_at: Optional[datetime] = None
    last_viewed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    invoice_id: Optional[UUID] = None
    items: List[QuoteItemResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class QuoteListResponse(BaseModel):
    quotes: List[QuoteResponse]
    total: int


# ============================================================================
# Invoice Schemas
# ============================================================================

class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit: Optional[str] = Field(None, max_length=30)
    unit_price_ht: Decimal = Field(..., ge=0)
    vat_rate: Decimal = Field(default=Decimal("20"), ge=0, le=100)


class InvoiceItemResponse(BaseModel):
    id: UUID
    position: int
    description: str
    quantity: Decimal
    unit: Optional[str] = None
    unit_price_ht: Decimal
    vat_rate: Decimal
    total_ht: Decimal
    total_ttc: Decimal

    class Config:
        from_attributes = True


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice. due_date defaults to issue_date + INVOICE_PAYMENT_DAYS."""
    client_id: UUID
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = Field(None, max_length=5000)
    payment_terms: Optional[str] = Field(None, max_length=255)
    items: List[InvoiceItemCreate] = Field(..., min_length=1)


class MarkPaidRequest(BaseModel):
    payment_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_notes: Optional[str] = Field(None, max_length=2000)
    bank_transaction_id: Optional[UUID] = None


class DueDateUpdate(BaseModel):
    due_date: date


class InvoiceResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    client_id: UUID
    client_name: Optional[str] = None
    quote_id: Optional[UUID] = None
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
    payment_method: Optional[str] = None
    payment_notes: Optional[str] = None
    public_token: Optional[str] = None
    view_count: int = 0
    first_viewed_at: Optional[datetime] = None
    last_viewed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    items: List[InvoiceItemResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceResponse]
    total: int


class SendDocumentResponse(BaseModel):
    """Returned after sending a quote or invoice: the public link and whether the mail went out."""
    public_url: str
    email_sent: bool
