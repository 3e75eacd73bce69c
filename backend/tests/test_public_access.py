"""
Tests for the public token gateway (service level).

Covers token lookup, view counting, quote responses with the validity window,
and guest authentication on shared project boards.
"""
import pytest
import pytest_asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from app.models.client import Client, ClientStatus
from app.models.project import Project, ProjectColumn, ProjectCard, ProjectGuest
from app.models.sales import Quote, QuoteStatus
from app.services.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.services.project_sharing import ProjectShareService, share_url
from app.services.public_access import (
    PublicTokenGateway,
    PublicResourceType,
    QuoteExpiredError,
    generate_public_token,
    is_quote_expired,
    quote_expires_at,
)


@pytest_asyncio.fixture
async def shared_project(db_session, test_tenant):
    project = Project(
        id=uuid.uuid4(),
        tenant_id=test_tenant.id,
        name="Refonte site",
        share_enabled=False,
        columns=[
            ProjectColumn(
                name="A faire",
                position=0,
                cards=[ProjectCard(title="Maquettes", position=0, priority="high", is_completed=False)],
            ),
            ProjectColumn(name="Fait", position=1, cards=[]),
        ],
        guests=[],
    )
    db_session.add(project)
    await db_session.commit()

    service = ProjectShareService(db_session, test_tenant.id)
    await service.enable(project.id)
    await service.invite_guest(project.id, "Guest@Example.com", "Paul")
    await db_session.commit()
    return project


class TestTokens:

    def test_token_is_64_hex_chars(self):
        token = generate_public_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        assert len({generate_public_token() for _ in range(100)}) == 100


class TestGetByPublicToken:

    @pytest.mark.asyncio
    async def test_quote_lookup(self, db_session, prospect, make_quote):
        quote = await make_quote(prospect)
        gateway = PublicTokenGateway(db_session)

        found = await gateway.get_by_public_token(PublicResourceType.QUOTE, quote.public_token)

        assert found.id == quote.id
        # Pure lookup: no view recorded
        assert found.view_count == 0

    @pytest.mark.asyncio
    async def test_unknown_token(self, db_session):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(NotFoundError) as exc_info:
            await gateway.get_by_public_token(PublicResourceType.INVOICE, "does-not-exist")
        assert exc_info.value.code == "INVOICE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_empty_token(self, db_session):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(NotFoundError):
            await gateway.get_by_public_token(PublicResourceType.QUOTE, "")

    @pytest.mark.asyncio
    async def test_project_requires_sharing_enabled(self, db_session, test_tenant, shared_project):
        gateway = PublicTokenGateway(db_session)
        token = shared_project.share_token

        found = await gateway.get_by_public_token(PublicResourceType.PROJECT, token)
        assert found.id == shared_project.id

        await ProjectShareService(db_session, test_tenant.id).disable(shared_project.id)
        await db_session.commit()

        with pytest.raises(NotFoundError) as exc_info:
            await gateway.get_by_public_token(PublicResourceType.PROJECT, token)
        assert exc_info.value.code == "PROJECT_NOT_FOUND"


class TestRecordView:

    @pytest.mark.asyncio
    async def test_view_counters(self, db_session, prospect, make_quote):
        quote = await make_quote(prospect)
        gateway = PublicTokenGateway(db_session)
        first = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)
        second = datetime(2026, 2, 3, 18, 30, tzinfo=timezone.utc)

        await gateway.record_view(PublicResourceType.QUOTE, quote, now=first)
        await gateway.record_view(PublicResourceType.QUOTE, quote, now=second)

        assert quote.view_count == 2
        assert quote.first_viewed_at == first
        assert quote.last_viewed_at == second

    @pytest.mark.asyncio
    async def test_invoice_views_are_counted(self, db_session, prospect, make_invoice):
        invoice = await make_invoice(prospect, Decimal("10.00"), public_token=generate_public_token())
        gateway = PublicTokenGateway(db_session)

        await gateway.record_view(PublicResourceType.INVOICE, invoice)

        assert invoice.view_count == 1
        assert invoice.first_viewed_at is not None


class TestRespondToQuote:

    @pytest.mark.asyncio
    async def test_accept_converts_prospect(self, db_session, prospect, make_quote):
        quote = await make_quote(prospect)
        gateway = PublicTokenGateway(db_session)
        now = datetime.now(timezone.utc)

        result = await gateway.respond_to_quote(quote.public_token, accept=True, now=now)
        await db_session.commit()

        assert result.status == QuoteStatus.ACCEPTED.value
        assert result.signed_at == now
        status = await db_session.scalar(select(Client.status).where(Client.id == prospect.id))
        assert status == ClientStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_reject_keeps_prospect(self, db_session, prospect, make_quote):
        quote = await make_quote(prospect)
        gateway = PublicTokenGateway(db_session)

        result = await gateway.respond_to_quote(quote.public_token, accept=False)

        assert result.status == QuoteStatus.REJECTED.value
        assert result.rejected_at is not None
        assert result.signed_at is None
        status = await db_session.scalar(select(Client.status).where(Client.id == prospect.id))
        assert status == ClientStatus.PROSPECT.value

    @pytest.mark.asyncio
    async def test_valid_until_validity_date(self, db_session, prospect, make_quote):
        quote = await make_quote(prospect, validity_date=date(2026, 3, 31))
        gateway = PublicTokenGateway(db_session)
        last_minute = datetime(2026, 3, 30, 23, 59, tzinfo=timezone.utc)

        result = await gateway.respond_to_quote(quote.public_token, accept=True, now=last_minute)

        assert result.status == QuoteStatus.ACCEPTED.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize("now", [
        datetime(2026, 3, 31, 0, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc),
        datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc),
    ])
    async def test_expired_quote_is_marked_expired(self, db_session, prospect, make_quote, now):
        quote = await make_quote(prospect, validity_date=date(2026, 3, 31))
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(QuoteExpiredError) as exc_info:
            await gateway.respond_to_quote(quote.public_token, accept=True, now=now)
        assert exc_info.value.code == "QUOTE_EXPIRED"
        assert isinstance(exc_info.value, InvalidStateError)

        await db_session.commit()
        assert quote.status == QuoteStatus.EXPIRED.value
        status = await db_session.scalar(select(Client.status).where(Client.id == prospect.id))
        assert status == ClientStatus.PROSPECT.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize("accept", [True, False])
    @pytest.mark.parametrize("status", ["draft", "accepted", "rejected", "expired"])
    async def test_only_sent_quotes_accept_responses(self, db_session, prospect, make_quote, status, accept):
        quote = await make_quote(prospect, status=status)
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(InvalidStateError) as exc_info:
            await gateway.respond_to_quote(quote.public_token, accept=accept)
        assert exc_info.value.code == "QUOTE_NOT_MODIFIABLE"
        assert quote.status == status

    @pytest.mark.asyncio
    async def test_unknown_token(self, db_session):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(NotFoundError):
            await gateway.respond_to_quote("unknown", accept=True)


class TestAuthenticateGuest:

    @pytest.mark.asyncio
    async def test_invited_email_is_case_insensitive(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)

        project, guest = await gateway.authenticate_guest(
            shared_project.share_token, email="  GUEST@example.com "
        )

        assert project.id == shared_project.id
        assert guest.email == "guest@example.com"
        assert guest.last_seen_at is not None

    @pytest.mark.asyncio
    async def test_name_is_updated(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)

        _, guest = await gateway.authenticate_guest(
            shared_project.share_token, email="guest@example.com", name="Paul Durand"
        )

        assert guest.name == "Paul Durand"

    @pytest.mark.asyncio
    async def test_returning_guest_uses_token(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        _, guest = await gateway.authenticate_guest(shared_project.share_token, email="guest@example.com")

        _, again = await gateway.authenticate_guest(shared_project.share_token, guest_token=guest.token)

        assert again.id == guest.id

    @pytest.mark.asyncio
    async def test_invalid_guest_token(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(UnauthorizedError) as exc_info:
            await gateway.authenticate_guest(shared_project.share_token, guest_token="nope")
        assert exc_info.value.code == "INVALID_GUEST_TOKEN"

    @pytest.mark.asyncio
    async def test_email_required(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(ValidationError) as exc_info:
            await gateway.authenticate_guest(shared_project.share_token)
        assert exc_info.value.code == "EMAIL_REQUIRED"

    @pytest.mark.asyncio
    async def test_uninvited_email(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(ForbiddenError) as exc_info:
            await gateway.authenticate_guest(shared_project.share_token, email="stranger@example.com")
        assert exc_info.value.code == "GUEST_NOT_INVITED"


class TestProjectSharing:

    @pytest.mark.asyncio
    async def test_regenerate_invalidates_old_link(self, db_session, test_tenant, shared_project):
        service = ProjectShareService(db_session, test_tenant.id)
        gateway = PublicTokenGateway(db_session)
        old_token = shared_project.share_token

        project = await service.regenerate(shared_project.id)
        await db_session.commit()

        assert project.share_token != old_token
        assert share_url(project).endswith(f"/shared/project/{project.share_token}")
        with pytest.raises(NotFoundError):
            await gateway.get_by_public_token(PublicResourceType.PROJECT, old_token)

    @pytest.mark.asyncio
    async def test_enable_keeps_existing_token(self, db_session, test_tenant, shared_project):
        service = ProjectShareService(db_session, test_tenant.id)
        token = shared_project.share_token

        await service.disable(shared_project.id)
        project = await service.enable(shared_project.id)

        assert project.share_enabled is True
        assert project.share_token == token

    @pytest.mark.asyncio
    async def test_reinvite_returns_existing_guest(self, db_session, test_tenant, shared_project):
        service = ProjectShareService(db_session, test_tenant.id)

        guest = await service.invite_guest(shared_project.id, "guest@example.com")
        guests = await service.list_guests(shared_project.id)

        assert len(guests) == 1
        assert guests[0].id == guest.id

    @pytest.mark.asyncio
    async def test_removed_guest_loses_access(self, db_session, test_tenant, shared_project):
        service = ProjectShareService(db_session, test_tenant.id)
        gateway = PublicTokenGateway(db_session)
        guests = await service.list_guests(shared_project.id)

        await service.remove_guest(shared_project.id, guests[0].id)
        await db_session.commit()

        with pytest.raises(ForbiddenError):
            await gateway.authenticate_guest(shared_project.share_token, email="guest@example.com")

    @pytest.mark.asyncio
    async def test_project_of_another_tenant(self, db_session, other_tenant, shared_project):
        service = ProjectShareService(db_session, other_tenant.id)

        with pytest.raises(NotFoundError) as exc_info:
            await service.enable(shared_project.id)
        assert exc_info.value.code == "PROJECT_NOT_FOUND"


class TestQuoteExpiry:

    def test_expires_at_start_of_validity_date(self):
        quote = Quote(validity_date=date(2026, 3, 31))

        assert quote_expires_at(quote) == datetime(2026, 3, 31, 0, 0, tzinfo=timezone.utc)
        assert not is_quote_expired(quote, datetime(2026, 3, 30, 23, 59, 59, tzinfo=timezone.utc))
        assert is_quote_expired(quote, datetime(2026, 3, 31, 0, 0, tzinfo=timezone.utc))


class TestGuestCards:

    async def _guest_token(self, db_session, project) -> str:
        _, guest = await PublicTokenGateway(db_session).authenticate_guest(
            project.share_token, email="guest@example.com"
        )
        return guest.token

    async def _board(self, db_session, project) -> dict:
        board = await PublicTokenGateway(db_session).get_by_public_token(
            PublicResourceType.PROJECT, project.share_token
        )
        return {col.name: [(card.title, card.position) for card in col.cards] for col in board.columns}

    @pytest.mark.asyncio
    async def test_create_card_at_bottom_of_column(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)
        column = shared_project.columns[0]

        card = await gateway.create_guest_card(
            shared_project.share_token, guest_token, column_id=column.id, title="  Recette  "
        )
        await db_session.commit()

        assert card.title == "Recette"
        assert card.priority == "medium"
        assert card.description is None
        assert (await self._board(db_session, shared_project))["A faire"] == [("Maquettes", 0), ("Recette", 1)]

    @pytest.mark.asyncio
    async def test_edit_refreshes_last_seen(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)
        guest = await db_session.scalar(select(ProjectGuest).where(ProjectGuest.token == guest_token))
        guest.last_seen_at = None
        await db_session.commit()

        await gateway.create_guest_card(
            shared_project.share_token, guest_token, column_id=shared_project.columns[1].id, title="Livraison"
        )

        assert guest.last_seen_at is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("guest_token", [None, "", "forged"])
    async def test_guest_token_required(self, db_session, shared_project, guest_token):
        gateway = PublicTokenGateway(db_session)

        with pytest.raises(UnauthorizedError) as exc_info:
            await gateway.create_guest_card(
                shared_project.share_token, guest_token, column_id=shared_project.columns[0].id, title="Carte"
            )
        assert exc_info.value.code == "INVALID_GUEST_TOKEN"

    @pytest.mark.asyncio
    async def test_column_must_belong_to_board(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)

        with pytest.raises(NotFoundError) as exc_info:
            await gateway.create_guest_card(
                shared_project.share_token, guest_token, column_id=uuid.uuid4(), title="Carte"
            )
        assert exc_info.value.code == "COLUMN_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_move_to_another_column(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)
        todo, done = shared_project.columns
        await gateway.create_guest_card(shared_project.share_token, guest_token, column_id=todo.id, title="Recette")
        await db_session.commit()
        maquettes = next(c for c in todo.cards if c.title == "Maquettes")

        await gateway.move_guest_card(
            shared_project.share_token, guest_token, card_id=maquettes.id, column_id=done.id, position=0
        )
        await db_session.commit()

        board = await self._board(db_session, shared_project)
        assert board["A faire"] == [("Recette", 0)]
        assert board["Fait"] == [("Maquettes", 0)]

    @pytest.mark.asyncio
    async def test_move_within_column(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)
        todo = shared_project.columns[0]
        for title in ("Recette", "Mise en ligne"):
            await gateway.create_guest_card(shared_project.share_token, guest_token, column_id=todo.id, title=title)
        await db_session.commit()
        last = next(c for c in todo.cards if c.title == "Mise en ligne")

        await gateway.move_guest_card(
            shared_project.share_token, guest_token, card_id=last.id, column_id=todo.id, position=0
        )
        await db_session.commit()

        assert (await self._board(db_session, shared_project))["A faire"] == [
            ("Mise en ligne", 0),
            ("Maquettes", 1),
            ("Recette", 2),
        ]

    @pytest.mark.asyncio
    async def test_position_past_end_puts_card_last(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)
        todo, done = shared_project.columns
        card = todo.cards[0]

        moved = await gateway.move_guest_card(
            shared_project.share_token, guest_token, card_id=card.id, column_id=done.id, position=42
        )

        assert moved.position == 0
        assert moved.column_id == done.id

    @pytest.mark.asyncio
    async def test_unknown_card(self, db_session, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)

        with pytest.raises(NotFoundError) as exc_info:
            await gateway.move_guest_card(
                shared_project.share_token,
                guest_token,
                card_id=uuid.uuid4(),
                column_id=shared_project.columns[0].id,
                position=0,
            )
        assert exc_info.value.code == "CARD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_disabled_sharing_blocks_edits(self, db_session, test_tenant, shared_project):
        gateway = PublicTokenGateway(db_session)
        guest_token = await self._guest_token(db_session, shared_project)
        await ProjectShareService(db_session, test_tenant.id).disable(shared_project.id)
        await db_session.commit()

        with pytest.raises(NotFoundError) as exc_info:
            await gateway.create_guest_card(
                shared_project.share_token, guest_token, column_id=shared_project.columns[0].id, title="Carte"
            )
        assert exc_info.value.code == "PROJECT_NOT_FOUND"
