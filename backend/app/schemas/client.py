"""
Client Schemas
"""
from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field, field_validator, EmailStr


class ClientBase(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    postal_code: Optional[str] = Field(None, max_length=20)
    city: Optional[str] = Field(None, max_length=100)
    siret: Optional[str] = Field(None, max_length=20)
    vat_number: Optional[str] = Field(None, max_length=30)
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator('company_name')
    @classmethod
    def validate_company_name(cls, v: str) -> str:
        """Trim whitespace from company name."""
        v = v.strip()
        if not v:
            raise ValueError("Company name cannot be empty")
        return v


class ClientCreate(ClientBase):
    # New clients are prospects unless created directly as active
    status: str = Field("prospect", pattern=r'^(prospect|active)$')


class ClientUpdate(BaseModel):
    """Partial update. Status can only be moved to inactive or back to active here."""
    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    postal_code: Optional[str] = Field(None, max_length=20)
    city: Optional[str] = Field(None, max_length=100)
    siret: Optional[str] = Field(None, max_length=20)
    vat_number: Optional[str] = Field(None, max_length=30)
    notes: Optional[str] = Field(None, max_length=5000)
    status: Optional[str] = Field(None, pattern=r'^(active|inactive)$')


class ClientResponse(ClientBase):
    id: UUID
    tenant_id: UUID
    email: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClientListResponse(BaseModel):
    clients: List[ClientResponse]
    total: int


class ProspectConversionResponse(BaseModel):
    """Result of a prospect conversion attempt."""
    converted: bool
    client: ClientResponse


class MigratedProspect(BaseModel):
    client_id: UUID
    company_name: str
    accepted_quotes: int
    invoices: int
    summary: str


class ProspectMigrationResponse(BaseModel):
    converted_count: int
    converted: List[MigratedProspect]
