"""
Bank API Endpoints

Bank accounts and transactions of the caller's tenant, with the invoice
allocations recorded against each transaction.
"""
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import get_db
from app.models.bank import BankAccount, BankTransaction
from app.schemas.bank import (
    BankAccountCreate,
    BankAccountResponse,
    BankTransactionCreate,
    BankTransactionResponse,
    BankTransactionDetailResponse,
    BankTransactionListResponse,
)
from app.api.v1.deps import Tenancy

router = APIRouter()


@router.get("/bank/accounts", response_model=list[BankAccountResponse])
async def list_bank_accounts(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(BankAccount)
        .where(BankAccount.tenant_id == ctx.tenant_id)
        .order_by(BankAccount.name)
    )
    return [BankAccountResponse.model_validate(a) for a in result.scalars().all()]


@router.post("/bank/accounts", response_model=BankAccountResponse, status_code=201)
async def create_bank_account(
    account_in: BankAccountCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    account = BankAccount(tenant_id=ctx.tenant_id, **account_in.model_dump())
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return BankAccountResponse.model_validate(account)


@router.get("/bank/transactions", response_model=BankTransactionListResponse)
async def list_bank_transactions(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
    reconciled: Optional[bool] = Query(None, description="Filter on is_reconciled"),
    bank_account_id: Optional[UUID] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
):
    query = select(BankTransaction).where(BankTransaction.tenant_id == ctx.tenant_id)
    if reconciled is not None:
        query = query.where(BankTransaction.is_reconciled.is_(reconciled))
    if bank_account_id:
        query = query.where(BankTransaction.bank_account_id == bank_account_id)

    result = await db.execute(
        query.order_by(BankTransaction.transaction_date.desc()).limit(limit)
    )
    transactions = result.scalars().all()
    return BankTransactionListResponse(
        transactions=[BankTransactionResponse.model_validate(t) for t in transactions],
        total=len(transactions),
    )


@router.post("/bank/transactions", response_model=BankTransactionResponse, status_code=201)
async def create_bank_transaction(
    transaction_in: BankTransactionCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Record a bank line manually."""
    if transaction_in.bank_account_id:
        account = await db.scalar(
            select(BankAccount.id).where(
                BankAccount.id == transaction_in.bank_account_id,
                BankAccount.tenant_id == ctx.tenant_id,
            )
        )
        if account is None:
            raise HTTPException(
                status_code=404,
                detail={"code": "BANK_ACCOUNT_NOT_FOUND", "message": "Bank account not found"},
            )

    transaction = BankTransaction(
        tenant_id=ctx.tenant_id,
        reconciled_amount=0,
        is_reconciled=False,
        **transaction_in.model_dump(),
    )
    db.add(transaction)
    await db.commit()
    await db.refresh(transaction)
    return BankTransactionResponse.model_validate(transaction)


@router.get("/bank/transactions/{transaction_id}", response_model=BankTransactionDetailResponse)
async def get_bank_transaction(
    transaction_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(BankTransaction)
        .options(selectinload(BankTransaction.reconciliations))
        .where(
            BankTransaction.id == transaction_id,
            BankTransaction.tenant_id == ctx.tenant_id,
        )
        .execution_options(populate_existing=True)
    )
    transaction = result.scalar_one_or_none()
    if not transaction:
        raise HTTPException(
            status_code=404,
            detail={"code": "BANK_TRANSACTION_NOT_FOUND", "message": "Bank transaction not found"},
        )
    return BankTransactionDetailResponse.model_validate(transaction)
