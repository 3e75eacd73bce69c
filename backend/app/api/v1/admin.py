"""
Tenant administration endpoints.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.client import ProspectMigrationResponse, MigratedProspect
from app.api.v1.deps import Tenancy, require_tenant_admin
from app.services.prospects import ProspectService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/migrate-prospects", response_model=ProspectMigrationResponse)
async def migrate_prospects(
    ctx: Tenancy,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Convert every prospect that already has an accepted quote or an invoice.

    Tenant owner/admin only. Safe to run repeatedly: a second run converts nothing.
    """
    require_tenant_admin(ctx)

    converted = await ProspectService(db, ctx.tenant_id).migrate_prospects()
    await db.commit()

    logger.info(
        "Prospect migration run",
        extra={
            "event": "prospect_migration_run",
            "tenant_id": str(ctx.tenant_id),
            "user_id": str(ctx.user.id),
            "converted": len(converted),
        },
    )

    return ProspectMigrationResponse(
        converted_count=len(converted),
        converted=[
            MigratedProspect(
                client_id=c.client_id,
                company_name=c.company_name,
                accepted_quotes=c.accepted_quotes,
                invoices=c.invoices,
                summary=c.summary,
            )
            for c in converted
        ],
    )
