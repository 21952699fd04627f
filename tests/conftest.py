import itertools
import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, get_db
from app.api.deps import get_password_hash
from app.core.clock import FixedClock, get_clock
from app.models.branch import Branch, LineOfBusiness
from app.models.complaint import Complaint
from app.models.lookups import ComplaintStatus, ComplaintType, get_status_record, seed_lookups
from app.models.user import User
from app.services.assignment_service import AssignmentDispatcher, get_dispatcher
from app.services.complaint_service import load_complaint
from app.services.email_service import MockEmailService, get_email_service

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

TEST_PASSWORD = "testpassword123"  # noqa: S105

# Monday morning; far enough from midnight that no window straddles a day
T0 = datetime(2026, 3, 2, 9, 0, 0)


@pytest_asyncio.fixture
async def test_engine():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def dispatcher(clock):
    return AssignmentDispatcher(clock)


@pytest.fixture
def mock_email():
    return MockEmailService()


@pytest_asyncio.fixture
async def org(test_db: AsyncSession):
    """Statuses plus two branches, two lines of business and one complaint type."""
    await seed_lookups(test_db)

    head_office = Branch(name="Head Office", description="Main branch")
    downtown = Branch(name="Downtown")
    motor = LineOfBusiness(name="Motor")
    home = LineOfBusiness(name="Home")
    claims = ComplaintType(name="Claims", description="Claim handling complaints")
    test_db.add_all([head_office, downtown, motor, home, claims])
    await test_db.commit()

    return SimpleNamespace(
        branch=head_office,
        other_branch=downtown,
        lob=motor,
        other_lob=home,
        complaint_type=claims,
    )


@pytest.fixture
def make_user(test_db: AsyncSession, org):
    """Factory fixture: await make_user(role="AGENT", branch=org.branch, ...)."""
    counter = itertools.count(1)

    async def _make(
        role: str = "AGENT",
        branch=None,
        line_of_business=None,
        email: str | None = None,
        name: str | None = None,
        is_active: bool = True,
    ) -> User:
        n = next(counter)
        user = User(
            email=email or f"{role.lower()}{n}@example.com",
            hashed_password=get_password_hash(TEST_PASSWORD),
            name=name or f"{role.title()} {n}",
            role=role,
            branch_id=branch.id if branch else None,
            line_of_business_id=line_of_business.id if line_of_business else None,
            is_active=is_active,
        )
        test_db.add(user)
        await test_db.commit()
        await test_db.refresh(user, ["branch", "line_of_business"])
        return user

    return _make


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(role="ADMIN", email="admin@example.com", name="Alice Admin")


@pytest_asyncio.fixture
async def agent(make_user, org) -> User:
    """Eligible agent for (Head Office, Motor)."""
    return await make_user(
        role="AGENT", branch=org.branch, line_of_business=org.lob, email="agent@example.com", name="Bob Agent"
    )


@pytest.fixture
def make_complaint(test_db: AsyncSession, org, admin):
    """Factory fixture inserting a complaint directly, bypassing the dispatcher."""
    counter = itertools.count(1)

    async def _make(
        created_at: datetime = T0,
        status: ComplaintStatus = ComplaintStatus.PENDING,
        assigned_to: User | None = None,
        created_by: User | None = None,
        branch=None,
        line_of_business=None,
        due_date: datetime | None = None,
    ) -> Complaint:
        n = next(counter)
        status_record = await get_status_record(test_db, status)
        complaint = Complaint(
            id=uuid.uuid4(),
            complaint_number=f"COMP{created_at.year}{n:05d}",
            customer_name=f"Customer {n}",
            customer_id=f"CUST{n:06d}",
            policy_number=f"POL-{n:08d}",
            description="Claim payout delayed",
            type_id=org.complaint_type.id,
            status_id=status_record.id,
            branch_id=(branch or org.branch).id,
            line_of_business_id=(line_of_business or org.lob).id,
            assigned_to_id=assigned_to.id if assigned_to else None,
            created_by_id=(created_by or admin).id,
            created_at=created_at,
            due_date=due_date or created_at + timedelta(hours=48),
        )
        test_db.add(complaint)
        await test_db.commit()
        return await load_complaint(test_db, complaint.id)

    return _make


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, clock: FixedClock, dispatcher: AssignmentDispatcher, mock_email):
    """Create test client with overridden database, clock, dispatcher and email sender."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_email_service] = lambda: mock_email

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _login(client: AsyncClient, email: str) -> dict:
    response = await client.post(
        "/api/v2/auth/login",
        json={"email": email, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200, response.text
    # Tests authenticate with the bearer header only
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest_asyncio.fixture
async def admin_headers(client: AsyncClient, admin: User) -> dict:
    return await _login(client, admin.email)


@pytest_asyncio.fixture
async def agent_headers(client: AsyncClient, agent: User) -> dict:
    return await _login(client, agent.email)
