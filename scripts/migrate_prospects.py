#!/usr/bin/env python3
"""
Convert prospects that already qualify as clients.

A prospect qualifies once it has an accepted quote or any invoice. The same
sweep is available per tenant at POST /api/v1/admin/migrate-prospects; this
script runs it for one or every active tenant.

Usage:
    python scripts/migrate_prospects.py
    python scripts/migrate_prospects.py --tenant-id 550e8400-e29b-41d4-a716-446655440000

Environment:
    DATABASE_URL: PostgreSQL connection string (required)
"""

import argparse
import asyncio
import os
import sys
from uuid import UUID

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from create_tenant_user import get_database_url


async def migrate(tenant_id: str = None) -> int:
    from app.models.tenant import Tenant
    from app.services.prospects import ProspectService

    engine = create_async_engine(get_database_url())
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        query = select(Tenant).where(Tenant.is_active.is_(True)).order_by(Tenant.name)
        if tenant_id:
            query = query.where(Tenant.id == UUID(tenant_id))
        tenants = (await session.execute(query)).scalars().all()

        total = 0
        for tenant in tenants:
            converted = await ProspectService(session, tenant.id).migrate_prospects()
            await session.commit()
            if not converted:
                continue
            print(f"{tenant.name}: {len(converted)} prospect(s) converted")
            for c in converted:
                print(f"  - {c.summary}")
            total += len(converted)

    await engine.dispose()
    return total


def main():
    parser = argparse.ArgumentParser(description="Convert qualifying prospects to active clients")
    parser.add_argument("--tenant-id", "-t", help="Only this tenant (default: every active tenant)")
    args = parser.parse_args()

    if args.tenant_id:
        try:
            UUID(args.tenant_id)
        except ValueError:
            print(f"ERROR: Invalid tenant ID format: {args.tenant_id}")
            sys.exit(1)

    total = asyncio.run(migrate(args.tenant_id))
    print(f"Done: {total} prospect(s) converted")


if __name__ == "__main__":
    main()
