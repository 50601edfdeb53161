"""Pytest configuration and fixtures for backend tests.

Database handling:
- Tests run against an in-memory SQLite database through aiosqlite
- Set TEST_DATABASE_URL to run the same tests against another database
"""

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
TEST_JWT_SECRET = "test-signing-secret-that-is-long-enough-0123456789"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET_KEY"] = TEST_JWT_SECRET
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="helpdesk-uploads-")
os.environ["SMTP_HOST"] = ""
os.environ["DEBUG"] = "false"

# Meets the password policy
TEST_PASSWORD = "Secret#123"


# --- Mail ---


class RecordingEmailService:
    """Stands in for the SMTP sender and keeps every message it was given."""

    def __init__(self):
        self.sent = []

    def send(self, message) -> bool:
        self.sent.append(message)
        return True


@pytest.fixture
def email_service() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
def mail_outbox(email_service):
    """A fresh outbox per test; call ``await mail_outbox.process_pending()`` to deliver."""
    from helpdesk.services.email import MailOutbox

    return MailOutbox(email_service)


# --- Token Authority ---


@pytest.fixture
def token_authority():
    """A fresh TokenAuthority per test so revocations never leak between tests."""
    from helpdesk.services.token_authority import TokenAuthority

    return TokenAuthority(
        TEST_JWT_SECRET.encode(),
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        revocation_retention=timedelta(hours=24),
    )


# --- Rate Limiter Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_login_rate_limiter():
    """Clear rate limiter attempts and 2FA challenges around each test."""
    from helpdesk.api.auth import _login_attempts, _pending_two_factor

    _login_attempts.clear()
    _pending_two_factor.clear()
    yield
    _login_attempts.clear()
    _pending_two_factor.clear()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a database engine with all tables for one test."""
    from helpdesk.models import Base

    kwargs = {}
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    token_authority,
    mail_outbox,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database, authority and outbox overrides."""
    from helpdesk.core.database import get_db
    from helpdesk.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    original_authority = app.state.token_authority
    original_outbox = app.state.mail_outbox
    app.state.token_authority = token_authority
    app.state.mail_outbox = mail_outbox

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.token_authority = original_authority
    app.state.mail_outbox = original_outbox


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating users of any role."""
    from helpdesk.models.user import User
    from helpdesk.services.auth import hash_password

    counter = {"n": 0}

    async def _create_user(
        role: str = "customer",
        name: str | None = None,
        email: str | None = None,
        password: str = TEST_PASSWORD,
        is_verified: bool = True,
        **kwargs,
    ) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} User {counter['n']}",
            email=email or f"{role}{counter['n']}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_verified=is_verified,
            **kwargs,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest_asyncio.fixture
async def customer(user_factory):
    return await user_factory("customer", name="Alice Customer", email="alice@example.com")


@pytest_asyncio.fixture
async def staff(user_factory):
    return await user_factory("staff", name="Sam Support", email="sam@example.com")


@pytest_asyncio.fixture
async def admin(user_factory):
    return await user_factory("admin", name="Ada Administrator", email="ada@example.com")


@pytest.fixture
def auth_headers(token_authority):
    """Build Bearer headers for a user from the test authority."""

    def _headers(user) -> dict[str, str]:
        token = token_authority.issue_access(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def customer_headers(customer, auth_headers) -> dict[str, str]:
    return auth_headers(customer)


@pytest.fixture
def staff_headers(staff, auth_headers) -> dict[str, str]:
    return auth_headers(staff)


@pytest.fixture
def admin_headers(admin, auth_headers) -> dict[str, str]:
    return auth_headers(admin)


@pytest.fixture
def attribute_factory(db_session):
    """Factory for ticket categories, priorities and product types."""
    from helpdesk.models.ticket_attribute import TicketCategory, TicketPriority, TicketProductType

    models = {
        "category": TicketCategory,
        "priority": TicketPriority,
        "product_type": TicketProductType,
    }

    async def _create(kind: str, name: str):
        item = models[kind](name=name)
        db_session.add(item)
        await db_session.flush()
        return item

    return _create


@pytest.fixture
def ticket_factory(db_session):
    """Factory for tickets created directly in the database."""
    from helpdesk.models.ticket import Ticket

    async def _create_ticket(owner, title: str = "Printer is on fire", **kwargs) -> Ticket:
        ticket = Ticket(
            user_id=owner.id,
            title=title,
            description=kwargs.pop("description", "Smoke everywhere"),
            status=kwargs.pop("status", "new"),
            **kwargs,
        )
        db_session.add(ticket)
        await db_session.flush()
        await db_session.refresh(ticket)
        return ticket

    return _create_ticket


# --- Pytest Hooks for Auto-Marking ---


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their fixtures.

    - Tests using db_session, db_engine, or async_client are marked as 'integration'
    - Everything else is marked as 'unit'
    - Tests can override with explicit markers
    """
    integration_fixtures = {"db_session", "db_engine", "async_client"}

    for item in items:
        if any(mark.name in ("unit", "integration") for mark in item.iter_markers()):
            continue

        if hasattr(item, "fixturenames") and integration_fixtures & set(item.fixturenames):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
