"""
Prospect Lifecycle Service

Keeps the one-way client transition prospect -> active:
- check_and_convert_prospect: converts only when the client has an accepted
  quote or at least one invoice (any status)
- convert_prospect_to_client: converts unconditionally (explicit admin action,
  quote acceptance, quote-to-invoice conversion)
- migrate_prospects: sweep over every qualifying prospect of a tenant

The status write is a conditional UPDATE ... WHERE status = 'prospect', so two
concurrent callers cannot both report a conversion and an active client is
never moved back to prospect.
"""
import logging
from dataclasses import dataclass
from typing import List
from uuid import UUID

from sqlalchemy import select, update, func, exists, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.client import Client, ClientStatus
from app.models.sales import Quote, QuoteStatus, Invoice
from app.services.logging import crm_logger

logger = logging.getLogger(__name__)


@dataclass
class ConvertedProspect:
    """One client converted by the prospect sweep."""
    client_id: UUID
    company_name: str
    accepted_quotes: int
    invoices: int

    @property
    def summary(self) -> str:
        return f"{self.company_name} ({self.accepted_quotes} accepted quotes, {self.invoices} invoices)"


class ProspectService:
    """Service for prospect -> active client conversion, scoped to one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def _get_status(self, client_id: UUID):
        result = await self.db.execute(
            select(Client.status).where(
                Client.id == client_id,
                Client.tenant_id == self.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def _activate(self, client_id: UUID) -> bool:
        """Flip prospect -> active. Returns False if the client was no longer a prospect."""
        result = await self.db.execute(
            update(Client)
            .where(
                Client.id == client_id,
                Client.tenant_id == self.tenant_id,
                Client.status == ClientStatus.PROSPECT.value,
            )
            .values(status=ClientStatus.ACTIVE.value)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def has_accepted_quote(self, client_id: UUID) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    Quote.client_id == client_id,
                    Quote.tenant_id == self.tenant_id,
                    Quote.status == QuoteStatus.ACCEPTED.value,
                )
            )
        )
        return bool(result.scalar())

    async def has_invoice(self, client_id: UUID) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    Invoice.client_id == client_id,
                    Invoice.tenant_id == self.tenant_id,
                )
            )
        )
        return bool(result.scalar())

    async def check_and_convert_prospect(self, client_id: UUID) -> bool:
        """
        Convert a prospect to an active client if it has a qualifying event.

        Returns:
            True if the client was converted by this call, False otherwise
            (client missing, not a prospect, or no accepted quote / invoice).
        """
        status = await self._get_status(client_id)
        if status is None or status != ClientStatus.PROSPECT.value:
            return False

        has_accepted_quote = await self.has_accepted_quote(client_id)
        has_invoice = await self.has_invoice(client_id)

        if not (has_accepted_quote or has_invoice):
            return False

        converted = await self._activate(client_id)
        if converted:
            crm_logger.prospect_converted(
                client_id=client_id,
                tenant_id=self.tenant_id,
                reason=f"accepted_quote={has_accepted_quote}, invoice={has_invoice}",
            )
        return converted

    async def convert_prospect_to_client(self, client_id: UUID) -> bool:
        """
        Convert a prospect to an active client without checking qualifying events.

        Returns:
            True if the client was converted, False if missing or not a prospect.
        """
        status = await self._get_status(client_id)
        if status is None:
            logger.warning(
                "Prospect conversion skipped: client not found",
                extra={"event": "prospect_not_found", "client_id": str(client_id)},
            )
            return False
        if status != ClientStatus.PROSPECT.value:
            return False

        converted = await self._activate(client_id)
        if converted:
            crm_logger.prospect_converted(
                client_id=client_id,
                tenant_id=self.tenant_id,
                reason="explicit",
            )
        return converted

    async def migrate_prospects(self) -> List[ConvertedProspect]:
        """
        Convert every prospect of the tenant that has an accepted quote or an invoice.

        Returns:
            The converted clients with their accepted quote and invoice counts.
        """
        accepted_quotes = (
            select(func.count(Quote.id))
            .where(
                Quote.client_id == Client.id,
                Quote.status == QuoteStatus.ACCEPTED.value,
            )
            .correlate(Client)
            .scalar_subquery()
        )
        invoices = (
            select(func.count(Invoice.id))
            .where(Invoice.client_id == Client.id)
            .correlate(Client)
            .scalar_subquery()
        )

        result = await self.db.execute(
            select(Client.id, Client.company_name, accepted_quotes, invoices)
            .where(
                Client.tenant_id == self.tenant_id,
                Client.status == ClientStatus.PROSPECT.value,
                or_(accepted_quotes > 0, invoices > 0),
            )
            .order_by(Client.company_name)
        )
        candidates = result.all()

        converted: List[ConvertedProspect] = []
        for client_id, company_name, quote_count, invoice_count in candidates:
            if not await self._activate(client_id):
                continue
            crm_logger.prospect_converted(
                client_id=client_id,
                tenant_id=self.tenant_id,
                reason="migration",
            )
            converted.append(
                ConvertedProspect(
                    client_id=client_id,
                    company_name=company_name,
                    accepted_quotes=quote_count or 0,
                    invoices=invoice_count or 0,
                )
            )

        logger.info(
            f"Prospect migration converted {len(converted)} clients",
            extra={"event": "prospect_migration", "tenant_id": str(self.tenant_id), "count": len(converted)},
        )
        return converted
