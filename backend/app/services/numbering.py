"""
Sequential document numbering per tenant.

Formats: DEV-YYYY-0001 for quotes, FAC-YYYY-0001 for invoices. The sequence
restarts at 1 every calendar year.
"""
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tenant import DocumentCounter

QUOTE_PREFIX = "DEV"
INVOICE_PREFIX = "FAC"


async def next_document_number(tenant_id: UUID, kind: str, prefix: str, db: AsyncSession) -> str:
    """
    Generate the next number for a document kind.
    Uses SELECT FOR UPDATE to prevent race conditions.
    """
    current_year = datetime.now().year

    result = await db.execute(
        select(DocumentCounter)
        .where(
            DocumentCounter.tenant_id == tenant_id,
            DocumentCounter.kind == kind,
        )
        .with_for_update()
    )
    counter = result.scalar_one_or_none()

    if counter is None:
        counter = DocumentCounter(
            tenant_id=tenant_id,
            kind=kind,
            current_year=current_year,
            current_sequence=1,
        )
        db.add(counter)
    elif counter.current_year != current_year:
        counter.current_year = current_year
        counter.current_sequence = 1
    else:
        counter.current_sequence += 1

    await db.flush()
    return f"{prefix}-{current_year}-{counter.current_sequence:04d}"


async def generate_quote_number(tenant_id: UUID, db: AsyncSession) -> str:
    return await next_document_number(tenant_id, "quote", QUOTE_PREFIX, db)


async def generate_invoice_number(tenant_id: UUID, db: AsyncSession) -> str:
    return await next_document_number(tenant_id, "invoice", INVOICE_PREFIX, db)
