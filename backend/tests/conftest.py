"""
Pytest configuration and fixtures for backend tests.

Provides common test fixtures for async client, database sessions,
test users, tenants, clients, documents and authentication headers.
"""
import pytest
import pytest_asyncio
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import get_db, Base
from app.core.rate_limit import rate_limiter
from app.core.roles import MemberRole
from app.core.security import create_access_token, get_password_hash
from app.models.user import User
from app.models.tenant import Tenant, TenantMember
from app.models.client import Client, ClientStatus
from app.models.sales import Quote, QuoteItem, QuoteStatus, Invoice, InvoiceItem, InvoiceStatus
from app.models.bank import BankTransaction


# In-memory SQLite shared by every connection of the engine (StaticPool).
# PostgreSQL-only behaviour (row locks) is not exercised here.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for tests."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(
        id=uuid.uuid4(),
        email="owner@example.com",
        hashed_password=get_password_hash("TestPassword123"),
        full_name="Test Owner",
        role="user",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def test_tenant(db_session: AsyncSession, test_user: User) -> Tenant:
    """Create a tenant owned by the test user."""
    tenant = Tenant(
        id=uuid.uuid4(),
        name="Atelier Dupont SARL",
        email="contact@atelier-dupont.fr",
        city="Lyon",
        is_active=True,
    )
    db_session.add(tenant)

    membership = TenantMember(
        id=uuid.uuid4(),
        user_id=test_user.id,
        tenant_id=tenant.id,
        role=MemberRole.OWNER,
    )
    db_session.add(membership)

    await db_session.commit()
    return tenant


@pytest_asyncio.fixture(scope="function")
async def other_tenant(db_session: AsyncSession) -> Tenant:
    """A second tenant the test user is not a member of."""
    tenant = Tenant(id=uuid.uuid4(), name="Other Company", is_active=True)
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture(scope="function")
async def auth_headers(test_user: User) -> dict:
    """Create authentication headers for the test user."""
    token = create_access_token(data={"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    test_user: User,
    test_tenant: Tenant,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    rate_limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
    rate_limiter.reset()


# =============================================================================
# Domain fixtures
# =============================================================================

@pytest_asyncio.fixture(scope="function")
async def prospect(db_session: AsyncSession, test_tenant: Tenant) -> Client:
    """A prospect client of the test tenant."""
    client = Client(
        id=uuid.uuid4(),
        tenant_id=test_tenant.id,
        company_name="Boulangerie Martin",
        contact_name="Claire Martin",
        email="claire@boulangerie-martin.fr",
        status=ClientStatus.PROSPECT.value,
    )
    db_session.add(client)
    await db_session.commit()
    return client


@pytest.fixture
def make_quote(db_session: AsyncSession, test_tenant: Tenant):
    """Factory: persist a single-line quote for a client."""
    counter = {"n": 0}

    async def _make(
        client: Client,
        status: str = QuoteStatus.SENT.value,
        total_ht: Decimal = Decimal("1000.00"),
        validity_date: date = None,
        public_token: str = None,
    ) -> Quote:
        counter["n"] += 1
        total_ttc = (total_ht * Decimal("1.20")).quantize(Decimal("0.01"))
        quote = Quote(
            id=uuid.uuid4(),
            tenant_id=test_tenant.id,
            client_id=client.id,
            client=client,
            quote_number=f"DEV-2026-{counter['n']:04d}",
            status=status,
            issue_date=date.today(),
            validity_date=validity_date or date.today() + timedelta(days=30),
            subtotal_ht=total_ht,
            tax_amount=total_ttc - total_ht,
            total_ttc=total_ttc,
            public_token=public_token or uuid.uuid4().hex + uuid.uuid4().hex,
            view_count=0,
            items=[
                QuoteItem(
                    position=1,
                    title="Site vitrine",
                    description="Conception et intégration",
                    quantity=Decimal("1"),
                    unit_price_ht=total_ht,
                    vat_rate=Decimal("20"),
                    total_ht=total_ht,
                    total_ttc=total_ttc,
                )
            ],
        )
        db_session.add(quote)
        await db_session.commit()
        return quote

    return _make


@pytest.fixture
def make_invoice(db_session: AsyncSession, test_tenant: Tenant):
    """Factory: persist a single-line invoice with the given TTC total."""
    counter = {"n": 0}

    async def _make(
        client: Client,
        total_ttc: Decimal,
        status: str = InvoiceStatus.SENT.value,
        public_token: str = None,
    ) -> Invoice:
        counter["n"] += 1
        total_ttc = Decimal(total_ttc)
        total_ht = (total_ttc / Decimal("1.20")).quantize(Decimal("0.01"))
        invoice = Invoice(
            id=uuid.uuid4(),
            tenant_id=test_tenant.id,
            client_id=client.id,
            client=client,
            invoice_number=f"FAC-2026-{counter['n']:04d}",
            status=status,
            issue_date=date.today(),
            due_date=date.today() + timedelta(days=30),
            subtotal_ht=total_ht,
            tax_amount=total_ttc - total_ht,
            discount_amount=Decimal("0"),
            total_ttc=total_ttc,
            public_token=public_token,
            view_count=0,
            items=[
                InvoiceItem(
                    position=1,
                    description="Prestation",
                    quantity=Decimal("1"),
                    unit_price_ht=total_ht,
                    vat_rate=Decimal("20"),
                    total_ht=total_ht,
                    total_ttc=total_ttc,
                )
            ],
        )
        db_session.add(invoice)
        await db_session.commit()
        return invoice

    return _make


@pytest.fixture
def make_transaction(db_session: AsyncSession, test_tenant: Tenant):
    """Factory: persist a bank transaction (positive amount = credit)."""

    async def _make(
        amount: Decimal,
        reconciled_amount: Decimal = Decimal("0"),
        transaction_date: date = None,
        label: str = "VIR SEPA",
        tenant_id: uuid.UUID = None,
    ) -> BankTransaction:
        transaction = BankTransaction(
            id=uuid.uuid4(),
            tenant_id=tenant_id or test_tenant.id,
            transaction_date=transaction_date or date.today(),
            amount=Decimal(amount),
            currency="EUR",
            label=label,
            reconciled_amount=Decimal(reconciled_amount),
            is_reconciled=False,
        )
        db_session.add(transaction)
        await db_session.commit()
        return transaction

    return _make
