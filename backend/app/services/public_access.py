"""
Public Token Access Gateway

Unauthenticated, single-resource access to quotes, invoices and shared
project boards through opaque random tokens.

Each resource type is a PublicResource variant exposing the same two
capabilities:
- find_by_token(token): pure lookup, no side effects
- record_view(resource): view counter update, run after a successful lookup

The tenant of a public request is the tenant of the resolved resource.
"""
import logging
import secrets
from datetime import datetime, time, timezone
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.project import Project, ProjectCard, ProjectColumn, ProjectGuest
from app.models.sales import Quote, QuoteStatus, Invoice
from app.models.tenant import Tenant
from app.services.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.services.logging import crm_logger, LogEntityType
from app.services.prospects import ProspectService

logger = logging.getLogger(__name__)


def generate_public_token() -> str:
    """Opaque 64-char hex token (32 random bytes)."""
    return secrets.token_hex(32)


def quote_expires_at(quote: Quote) -> datetime:
    """Expiry instant of a quote: start of its validity_date, UTC."""
    return datetime.combine(quote.validity_date, time.min, tzinfo=timezone.utc)


def is_quote_expired(quote: Quote, now: Optional[datetime] = None) -> bool:
    return (now or datetime.now(timezone.utc)) >= quote_expires_at(quote)


class PublicResourceType(str, Enum):
    QUOTE = "quote"
    INVOICE = "invoice"
    PROJECT = "project"


class QuoteExpiredError(InvalidStateError):
    """Raised after a response on a quote past its validity date; the quote is now expired."""
    default_code = "QUOTE_EXPIRED"


class PublicResource:
    """Capability interface shared by every publicly reachable resource."""
    resource_type: PublicResourceType
    not_found_message = "Resource not found"

    async def find_by_token(self, db: AsyncSession, token: str):
        raise NotImplementedError

    def record_view(self, resource, now: datetime) -> None:
        raise NotImplementedError


class _ViewCountedDocument(PublicResource):
    """Quotes and invoices: public_token lookup, view counters on each view."""
    model = None
    entity_type: LogEntityType

    async def find_by_token(self, db: AsyncSession, token: str):
        model = self.model
        result = await db.execute(
            select(model)
            .options(
                selectinload(model.items),
                selectinload(model.client),
            )
            .where(model.public_token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def record_view(self, resource, now: datetime) -> None:
        resource.view_count = (resource.view_count or 0) + 1
        resource.last_viewed_at = now
        if resource.first_viewed_at is None:
            resource.first_viewed_at = now
        crm_logger.public_viewed(
            entity_type=self.entity_type,
            entity_id=resource.id,
            tenant_id=resource.tenant_id,
            view_count=resource.view_count,
        )


class QuoteResource(_ViewCountedDocument):
    resource_type = PublicResourceType.QUOTE
    model = Quote
    entity_type = LogEntityType.QUOTE
    not_found_message = "Quote not found"


class InvoiceResource(_ViewCountedDocument):
    resource_type = PublicResourceType.INVOICE
    model = Invoice
    entity_type = LogEntityType.INVOICE
    not_found_message = "Invoice not found"


class ProjectResource(PublicResource):
    """Shared boards resolve only while sharing is enabled. Views are not counted."""
    resource_type = PublicResourceType.PROJECT
    not_found_message = "Project not found or sharing disabled"

    async def find_by_token(self, db: AsyncSession, token: str):
        result = await db.execute(
            select(Project)
            .options(selectinload(Project.columns).selectinload(ProjectColumn.cards))
            .where(
                Project.share_token == token,
                Project.share_enabled.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def record_view(self, resource, now: datetime) -> None:
        return None


PUBLIC_RESOURCES: Dict[PublicResourceType, PublicResource] = {
    PublicResourceType.QUOTE: QuoteResource(),
    PublicResourceType.INVOICE: InvoiceResource(),
    PublicResourceType.PROJECT: ProjectResource(),
}


class PublicTokenGateway:
    """Entry point for every public (token-based) operation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_public_token(self, resource_type: PublicResourceType, token: str):
        """
        Resolve a token to its resource.

        Raises:
            NotFoundError: unknown token (or project not shared)
        """
        resource = PUBLIC_RESOURCES[resource_type]
        found = await resource.find_by_token(self.db, token) if token else None
        if found is None:
            raise NotFoundError(
                resource.not_found_message,
                code=f"{resource_type.value.upper()}_NOT_FOUND",
            )
        return found

    async def record_view(
        self,
        resource_type: PublicResourceType,
        found,
        now: Optional[datetime] = None,
    ) -> None:
        PUBLIC_RESOURCES[resource_type].record_view(found, now or datetime.now(timezone.utc))
        await self.db.flush()

    async def get_tenant(self, tenant_id) -> Optional[Tenant]:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    async def respond_to_quote(
        self,
        token: str,
        accept: bool,
        now: Optional[datetime] = None,
    ) -> Quote:
        """
        Record the client's answer on a sent quote.

        The quote expires at the start of its validity_date (UTC). A response
        from that instant on moves the quote to expired (flushed, so the
        caller can commit it) and raises QuoteExpiredError.

        Raises:
            NotFoundError: unknown token
            InvalidStateError: quote is not in sent status
            QuoteExpiredError: quote is past its validity date
        """
        now = now or datetime.now(timezone.utc)
        quote = await self.get_by_public_token(PublicResourceType.QUOTE, token)

        if quote.status != QuoteStatus.SENT.value:
            raise InvalidStateError(
                "This quote can no longer be modified",
                code="QUOTE_NOT_MODIFIABLE",
            )

        if is_quote_expired(quote, now):
            quote.status = QuoteStatus.EXPIRED.value
            await self.db.flush()
            crm_logger.quote_expired(quote_id=quote.id, tenant_id=quote.tenant_id)
            raise QuoteExpiredError("This quote has expired")

        if accept:
            quote.status = QuoteStatus.ACCEPTED.value
            quote.signed_at = now
            await self.db.flush()
            await ProspectService(self.db, quote.tenant_id).convert_prospect_to_client(quote.client_id)
        else:
            quote.status = QuoteStatus.REJECTED.value
            quote.rejected_at = now
            await self.db.flush()

        crm_logger.quote_responded(quote_id=quote.id, tenant_id=quote.tenant_id, accepted=accept)
        return quote

    async def authenticate_guest(
        self,
        token: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        guest_token: Optional[str] = None,
    ):
        """
        Authenticate a guest on a shared board.

        A returning guest presents its guest token; a new guest identifies
        with an invited e-mail address.

        Returns:
            (project, guest)

        Raises:
            NotFoundError: unknown share token or sharing disabled
            UnauthorizedError: unknown guest token
            ValidationError: no guest token and no e-mail
            ForbiddenError: e-mail not invited on this project
        """
        project = await self.get_by_public_token(PublicResourceType.PROJECT, token)
        now = datetime.now(timezone.utc)

        if guest_token:
            guest = await self._guest_by_token(project, guest_token)
            guest.last_seen_at = now
            await self.db.flush()
            return project, guest

        if not email:
            raise ValidationError("Email is required", code="EMAIL_REQUIRED")

        result = await self.db.execute(
            select(ProjectGuest).where(
                ProjectGuest.project_id == project.id,
                ProjectGuest.email == email.strip().lower(),
            )
        )
        guest = result.scalar_one_or_none()
        if not guest:
            logger.info(
                "Guest access refused: e-mail not invited",
                extra={"event": "guest_not_invited", "project_id": str(project.id)},
            )
            raise ForbiddenError(
                "This e-mail is not allowed to access this project. Ask the owner for an invitation.",
                code="GUEST_NOT_INVITED",
            )

        if name:
            guest.name = name
        guest.last_seen_at = now
        await self.db.flush()
        return project, guest

    async def _guest_by_token(self, project: Project, guest_token: Optional[str]) -> ProjectGuest:
        guest = None
        if guest_token:
            result = await self.db.execute(
                select(ProjectGuest).where(
                    ProjectGuest.token == guest_token,
                    ProjectGuest.project_id == project.id,
                )
            )
            guest = result.scalar_one_or_none()
        if not guest:
            raise UnauthorizedError("Invalid guest token", code="INVALID_GUEST_TOKEN")
        return guest

    @staticmethod
    def _column(project: Project, column_id) -> ProjectColumn:
        column = next((c for c in project.columns if c.id == column_id), None)
        if column is None:
            raise NotFoundError("Column not found", code="COLUMN_NOT_FOUND")
        return column

    async def create_guest_card(
        self,
        token: str,
        guest_token: str,
        column_id,
        title: str,
        description: Optional[str] = None,
        priority: str = "medium",
    ) -> ProjectCard:
        """
        Add a card at the bottom of a column of a shared board.

        Raises:
            NotFoundError: unknown share token, sharing disabled, or column not on the board
            UnauthorizedError: unknown guest token
        """
        project = await self.get_by_public_token(PublicResourceType.PROJECT, token)
        guest = await self._guest_by_token(project, guest_token)
        column = self._column(project, column_id)

        card = ProjectCard(
            title=title.strip(),
            description=(description or "").strip() or None,
            priority=priority or "medium",
            position=max((c.position for c in column.cards), default=-1) + 1,
            is_completed=False,
        )
        column.cards.append(card)
        guest.last_seen_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(
            "Guest created a card",
            extra={"event": "guest_card_created", "project_id": str(project.id), "card_id": str(card.id)},
        )
        return card

    async def move_guest_card(
        self,
        token: str,
        guest_token: str,
        card_id,
        column_id,
        position: int,
    ) -> ProjectCard:
        """
        Move a card to a position in a column of the same board.

        Cards of the source and target columns are renumbered 0..n-1;
        a position past the end puts the card last.

        Raises:
            NotFoundError: unknown share token, sharing disabled, column or card not on the board
            UnauthorizedError: unknown guest token
        """
        project = await self.get_by_public_token(PublicResourceType.PROJECT, token)
        guest = await self._guest_by_token(project, guest_token)
        target = self._column(project, column_id)

        source, card = next(
            ((col, c) for col in project.columns for c in col.cards if c.id == card_id),
            (None, None),
        )
        if card is None:
            raise NotFoundError("Card not found", code="CARD_NOT_FOUND")

        source.cards.remove(card)
        position = min(max(position, 0), len(target.cards))
        target.cards.insert(position, card)

        for column in {source, target}:
            for index, c in enumerate(column.cards):
                c.position = index

        guest.last_seen_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(
            "Guest moved a card",
            extra={
                "event": "guest_card_moved",
                "project_id": str(project.id),
                "card_id": str(card.id),
                "column_id": str(target.id),
                "position": position,
            },
        )
        return card
