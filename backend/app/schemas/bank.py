"""
Bank Reconciliation Schemas

Pydantic schemas for:
- Bank accounts and transactions
- Invoice allocations (reconciliations)
- Reconcile suggestions for an invoice
"""
from datetime import datetime, date
from typing import Optional, List
from uuid import UUID
from decimal import Decimal
from pydantic import BaseModel, Field, computed_field


# ============ Accounts ============

class BankAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    iban: Optional[str] = Field(None, max_length=34)
    currency: str = Field(default="EUR", min_length=3, max_length=3)


class BankAccountResponse(BaseModel):
    id: UUID
    name: str
    iban: Optional[str] = None
    currency: str
    created_at: datetime

    class Config:
        from_attributes = True


# ============ Transactions ============

class BankTransactionCreate(BaseModel):
    """Manual entry of a bank line. Positive amount = credit, negative = debit."""
    bank_account_id: Optional[UUID] = None
    external_id: Optional[str] = Field(None, max_length=120)
    transaction_date: date
    value_date: Optional[date] = None
    amount: Decimal = Field(..., description="Signed amount: positive = credit, negative = debit")
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    label: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    counterparty_name: Optional[str] = Field(None, max_length=200)
    counterparty_account: Optional[str] = Field(None, max_length=34)
    reference: Optional[str] = Field(None, max_length=140)


class ReconciliationResponse(BaseModel):
    """One allocation of a bank transaction to an invoice."""
    id: UUID
    invoice_id: UUID
    bank_transaction_id: UUID
    amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class BankTransactionResponse(BaseModel):
    id: UUID
    bank_account_id: Optional[UUID] = None
    external_id: Optional[str] = None
    transaction_date: date
    value_date: Optional[date] = None
    amount: Decimal
    currency: str
    label: str
    description: Optional[str] = None
    counterparty_name: Optional[str] = None
    counterparty_account: Optional[str] = None
    reference: Optional[str] = None
    reconciled_amount: Decimal
    is_reconciled: bool
    invoice_id: Optional[UUID] = None
    version: int
    created_at: datetime

    class Config:
        from_attributes = True

    @computed_field
    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.reconciled_amount


class BankTransactionDetailResponse(BankTransactionResponse):
    reconciliations: List[ReconciliationResponse] = []


class BankTransactionListResponse(BaseModel):
    transactions: List[BankTransactionResponse]
    total: int


# ============ Reconcile suggestions ============

class SuggestionInvoice(BaseModel):
    id: UUID
    invoice_number: str
    amount: Decimal
    client_name: Optional[str] = None


class TransactionSuggestionResponse(BaseModel):
    id: UUID
    external_id: Optional[str] = None
    transaction_date: date
    value_date: Optional[date] = None
    amount: Decimal
    reconciled_amount: Decimal
    remaining_amount: Decimal
    is_partially_reconciled: bool
    currency: str
    label: str
    description: Optional[str] = None
    counterparty_name: Optional[str] = None
    counterparty_account: Optional[str] = None
    reference: Optional[str] = None
    is_exact_match: bool
    is_close_match: bool
    invoice_fits_in_remaining: bool
    amount_diff: Decimal
    match_score: int


class ReconcileSuggestionsResponse(BaseModel):
    invoice: SuggestionInvoice
    suggested: List[TransactionSuggestionResponse]
    others: List[TransactionSuggestionResponse]
    total_unreconciled: int
