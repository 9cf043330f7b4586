"""Pytest configuration and fixtures."""

import os

# Settings require these; set before the app (and its settings) are imported.
os.environ.setdefault("IDENTITY_JWT_SECRET", "test-identity-secret")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("ENVIRONMENT", "development")

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from planlab.api.deps import get_now
from planlab.config import AccessPolicy, get_access_policy, get_settings
from planlab.db.base import Base
from planlab.db.models import Chat, Cohort, Profile, RegistrationStatus
from planlab.db.session import get_db
from planlab.main import app
from planlab.services.generation import get_generation_client

TEACHER_EMAIL = "docente@umsa.bo"
DOMAIN = "umsa.bo"

# Tuesday; the cohort anchor below is the Saturday before it.
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
ANCHOR = date(2026, 3, 7)


# =============================================================================
# FAKES
# =============================================================================


class FakeGeneration:
    """Stands in for GenerationClient; replays canned replies in order."""

    def __init__(self) -> None:
        self.replies: list[str | Exception] = []
        self.prompts: list[str] = []

    def queue(self, *replies: str | Exception) -> None:
        self.replies.extend(replies)

    async def complete(self, prompt: str, *, system: str | None = None) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@dataclass
class Clock:
    now: datetime = NOW


@dataclass
class Caller:
    user_id: UUID
    email: str
    headers: dict[str, str] = field(default_factory=dict)


def make_token(user_id: UUID, email: str, *, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Mint an access token the way the auth provider does."""
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": settings.identity_jwt_audience,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.identity_jwt_secret, algorithm=settings.identity_jwt_algorithm)


def make_caller(email: str) -> Caller:
    user_id = uuid4()
    return Caller(
        user_id=user_id,
        email=email,
        headers={"Authorization": f"Bearer {make_token(user_id, email)}"},
    )


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and inspecting data directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def generation() -> FakeGeneration:
    return FakeGeneration()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy(
        teacher_emails=frozenset({TEACHER_EMAIL}),
        student_test_emails=frozenset({"tester@gmail.com"}),
        allowed_domain=DOMAIN,
    )


@pytest.fixture
async def client(session_factory, generation, clock, policy) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_client] = lambda: generation
    app.dependency_overrides[get_access_policy] = lambda: policy
    app.dependency_overrides[get_now] = lambda: clock.now

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# SEED DATA
# =============================================================================


async def create_cohort(db: AsyncSession, **overrides) -> Cohort:
    values = {
        "name": "Cohorte 2026-I",
        "is_active": True,
        "access_starts_at": NOW - timedelta(days=30),
        "access_ends_at": NOW + timedelta(days=90),
        "hours_start_at": ANCHOR,
    }
    values.update(overrides)
    cohort = Cohort(**values)
    db.add(cohort)
    await db.commit()
    await db.refresh(cohort)
    return cohort


async def create_profile(
    db: AsyncSession,
    caller: Caller,
    cohort: Cohort | None,
    *,
    status: RegistrationStatus = RegistrationStatus.APPROVED,
    **overrides,
) -> Profile:
    values = {
        "user_id": caller.user_id,
        "email": caller.email,
        "ru": "1234567",
        "first_name": "Ana",
        "last_name": "Quispe",
        "semester": "1",
        "cohort_id": cohort.id if cohort else None,
        "registration_status": status.value,
    }
    values.update(overrides)
    profile = Profile(**values)
    db.add(profile)
    await db.commit()
    return profile


async def create_chat(db: AsyncSession, caller: Caller) -> Chat:
    chat = Chat(user_id=caller.user_id)
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    return chat


@pytest.fixture
async def cohort(db) -> Cohort:
    return await create_cohort(db)


@pytest.fixture
def teacher() -> Caller:
    return make_caller(TEACHER_EMAIL)


@pytest.fixture
async def student(db, cohort) -> Caller:
    """Approved student in the active cohort, inside the access window."""
    caller = make_caller("ana.quispe@umsa.bo")
    await create_profile(db, caller, cohort)
    return caller


@pytest.fixture
async def chat(db, student) -> Chat:
    return await create_chat(db, student)
