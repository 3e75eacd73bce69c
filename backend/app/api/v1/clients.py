"""
Clients API Endpoints

CRUD operations for clients and prospect conversion.
Scoped to the caller's tenant.
"""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.client import Client
from app.models.sales import Quote, Invoice
from app.schemas.client import (
    ClientCreate,
    ClientUpdate,
    ClientResponse,
    ClientListResponse,
    ProspectConversionResponse,
)
from app.api.v1.deps import Tenancy, require_tenant_admin
from app.services.prospects import ProspectService

router = APIRouter()


async def get_tenant_client(client_id: UUID, tenant_id: UUID, db: AsyncSession) -> Client:
    result = await db.execute(
        select(Client).where(
            Client.id == client_id,
            Client.tenant_id == tenant_id,
        )
    )
    client = result.scalar_one_or_none()
    if not client:
        raise HTTPException(
            status_code=404,
            detail={"code": "CLIENT_NOT_FOUND", "message": "Client not found"},
        )
    return client


@router.get("/clients", response_model=ClientListResponse)
async def list_clients(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
    status: str = Query(None, pattern=r'^(prospect|active|inactive)$', description="Filter by status"),
    search: str = Query(None, max_length=100, description="Search by company, contact or email"),
):
    """List the tenant's clients, optionally filtered by status or search text."""
    query = select(Client).where(Client.tenant_id == ctx.tenant_id)

    if status:
        query = query.where(Client.status == status)

    if search:
        term = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Client.company_name).like(term),
                func.lower(Client.contact_name).like(term),
                func.lower(Client.email).like(term),
            )
        )

    result = await db.execute(query.order_by(Client.company_name))
    clients = result.scalars().all()

    return ClientListResponse(
        clients=[ClientResponse.model_validate(c) for c in clients],
        total=len(clients),
    )


@router.post("/clients", response_model=ClientResponse, status_code=201)
async def create_client(
    client_in: ClientCreate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    client = Client(
        tenant_id=ctx.tenant_id,
        **client_in.model_dump(),
    )
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return ClientResponse.model_validate(client)


@router.get("/clients/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    client = await get_tenant_client(client_id, ctx.tenant_id, db)
    return ClientResponse.model_validate(client)


@router.put("/clients/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: UUID,
    client_in: ClientUpdate,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Update a client.

    Only provided fields will be updated (partial update). A prospect cannot be
    set to active here; conversion goes through /clients/{id}/convert.
    """
    client = await get_tenant_client(client_id, ctx.tenant_id, db)
    update_data = client_in.model_dump(exclude_unset=True)

    if update_data.get("status") == "active" and client.status == "prospect":
        raise HTTPException(
            status_code=400,
            detail={
                "code": "USE_PROSPECT_CONVERSION",
                "message": "Use the convert action to turn a prospect into a client",
            },
        )

    for field, value in update_data.items():
        setattr(client, field, value)

    await db.commit()
    await db.refresh(client)
    return ClientResponse.model_validate(client)


@router.delete("/clients/{client_id}", status_code=204)
async def delete_client(
    client_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a client. Clients with quotes or invoices cannot be deleted."""
    client = await get_tenant_client(client_id, ctx.tenant_id, db)

    quote_count = await db.scalar(select(func.count(Quote.id)).where(Quote.client_id == client.id))
    invoice_count = await db.scalar(select(func.count(Invoice.id)).where(Invoice.client_id == client.id))
    if quote_count or invoice_count:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "CLIENT_HAS_DOCUMENTS",
                "message": "Clients with quotes or invoices cannot be deleted",
            },
        )

    await db.delete(client)
    await db.commit()
    return None


@router.post("/clients/{client_id}/convert", response_model=ProspectConversionResponse)
async def convert_client(
    client_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Convert a prospect to an active client (tenant owner/admin only)."""
    require_tenant_admin(ctx)
    client = await get_tenant_client(client_id, ctx.tenant_id, db)

    converted = await ProspectService(db, ctx.tenant_id).convert_prospect_to_client(client.id)
    await db.commit()
    await db.refresh(client)

    return ProspectConversionResponse(converted=converted, client=ClientResponse.model_validate(client))


@router.post("/clients/{client_id}/check-prospect", response_model=ProspectConversionResponse)
async def check_prospect(
    client_id: UUID,
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Convert a prospect if it has an accepted quote or an invoice."""
    client = await get_tenant_client(client_id, ctx.tenant_id, db)

    converted = await ProspectService(db, ctx.tenant_id).check_and_convert_prospect(client.id)
    await db.commit()
    await db.refresh(client)

    return ProspectConversionResponse(converted=converted, client=ClientResponse.model_validate(client))
