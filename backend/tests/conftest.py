"""Shared fixtures: in-memory SQLite database, seeded roles, API client and user factory."""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SMTP_HOST"] = ""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import agility.models  # noqa: F401
from agility.auth.jwt import create_access_token, get_password_hash
from agility.database import Base, get_db
from agility.main import app
from agility.models.allocation import ApprovalStatus, PhaseAllocation, PlanningStatus, WeeklyAllocation
from agility.models.project import Phase, Project, ProjectMember, ProjectRole
from agility.models.user import Role, User, UserRole
from agility.engine.weeks import week_end, week_key, week_start


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINTs; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        for name in ("growth_team", "consultant"):
            session.add(Role(name=name))
        await session.commit()
        yield session


@pytest.fixture
async def client(db, session_maker):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    async def _make(email: str, full_name: str = "", roles: tuple[str, ...] = ("consultant",)) -> User:
        user = User(email=email, hashed_password=get_password_hash("secret123"), full_name=full_name or email.split("@")[0])
        db.add(user)
        await db.flush()
        for name in roles:
            role = (await db.execute(select(Role).where(Role.name == name))).scalar_one()
            db.add(UserRole(user_id=user.id, role_id=role.id))
        await db.commit()
        return user

    return _make


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
async def team(make_user):
    """Growth Team member, a PM (plain consultant role, PM by project relation) and two consultants."""
    return {
        "growth": await make_user("growth@example.com", "Grace Growth", ("growth_team",)),
        "pm": await make_user("pm@example.com", "Pat Manager"),
        "alice": await make_user("alice@example.com", "Alice Consultant"),
        "bob": await make_user("bob@example.com", "Bob Consultant"),
    }


async def create_project(db: AsyncSession, team: dict, start: date, weeks: int = 12) -> Project:
    project = Project(
        title="Website Relaunch",
        start_date=start,
        end_date=start + timedelta(days=weeks * 7),
        budgeted_hours=Decimal(500),
        product_manager_id=team["pm"].id,
        created_by=team["growth"].id,
    )
    db.add(project)
    await db.flush()
    db.add(ProjectMember(project_id=project.id, user_id=team["pm"].id, role=ProjectRole.PRODUCT_MANAGER))
    await db.commit()
    return project


async def create_phase(db: AsyncSession, project: Project, start: date, end: date, name: str = "Discovery") -> Phase:
    phase = Phase(project_id=project.id, name=name, start_date=start, end_date=end)
    db.add(phase)
    await db.commit()
    return phase


async def create_allocation(
    db: AsyncSession,
    phase: Phase,
    consultant: User,
    hours: str,
    status: ApprovalStatus = ApprovalStatus.APPROVED,
) -> PhaseAllocation:
    allocation = PhaseAllocation(
        phase_id=phase.id,
        consultant_id=consultant.id,
        total_hours=Decimal(hours),
        approval_status=status,
    )
    db.add(allocation)
    await db.commit()
    return allocation


async def add_week(
    db: AsyncSession,
    allocation: PhaseAllocation,
    day: date,
    hours: str,
    status: PlanningStatus = PlanningStatus.APPROVED,
    approved: str | None = None,
) -> WeeklyAllocation:
    monday = week_start(day)
    number, year = week_key(monday)
    row = WeeklyAllocation(
        phase_allocation_id=allocation.id,
        consultant_id=allocation.consultant_id,
        week_start_date=monday,
        week_end_date=week_end(monday),
        week_number=number,
        year=year,
        proposed_hours=Decimal(hours),
        approved_hours=Decimal(approved) if approved is not None else None,
        planning_status=status,
    )
    db.add(row)
    await db.commit()
    return row
