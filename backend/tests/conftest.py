"""
BidBoard Backend - Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Every test gets a fresh file-backed SQLite database (sqlite+aiosqlite)
       with tables created from Base.metadata, so guarded UPDATEs and the
       unique constraint behave as they do in production. A file (not
       :memory:) lets the concurrency tests open independent connections.

Fixture Hierarchy:
    db_engine ─ session_factory ─┬─ db   (fresh-session reads)
                                 ├─ seed (projects, profiles, applications)
                                 └─ svc  (service calls, one session each)
    notifier ─ dispatcher ─ service
    test_client (HTTP, dependencies overridden onto the fixtures above)
"""

import os
import tempfile

# Must run before anything imports bidboard.config
_TEST_DIR = tempfile.mkdtemp(prefix="bidboard_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/default.db"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["NOTIFIER_BACKEND"] = "log"
os.environ["OPERATION_TIMEOUT_SECONDS"] = "30"

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bidboard.database import Base, build_engine
from bidboard.domain.types import ApplicationContent, ProjectStatus
from bidboard.models.application import Application  # noqa: F401
from bidboard.models.professional import ProfessionalProfile
from bidboard.models.project import Project
from bidboard.repositories.sqlalchemy_repository import SqlAlchemyRepository
from bidboard.services.application_service import ApplicationService
from bidboard.services.notifier import NotificationDispatcher
from bidboard.services.notifier_base import Notifier

COVER_LETTER = (
    "I have delivered three similar marketplace integrations and can start "
    "next week with a clear milestone plan."
)


# ══════════════════════════════════════════════════════════════════════════
# Notifier doubles
# ══════════════════════════════════════════════════════════════════════════

class RecordingNotifier(Notifier):
    """Keeps every delivered event in memory; optionally fails every call."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[uuid.UUID, str, Dict[str, Any]]] = []
        self.fail = fail

    async def notify(self, user_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("notifier is down")
        self.sent.append((user_id, event_type, payload))

    def events_for(self, user_id: uuid.UUID) -> List[str]:
        return [event for recipient, event, _ in self.sent if recipient == user_id]


# ══════════════════════════════════════════════════════════════════════════
# Database fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bidboard.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


class Reader:
    """
    Fresh-session reads for assertions.

    Each read opens and closes its own session: an idle open transaction
    would hold the SQLite write lock (BEGIN IMMEDIATE) and block the code
    under test.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def application(self, application_id: uuid.UUID):
        async with self.session_factory() as session:
            return await SqlAlchemyRepository(session).get_application(application_id)

    async def project(self, project_id: uuid.UUID):
        async with self.session_factory() as session:
            return await SqlAlchemyRepository(session).get_project(project_id)


@pytest.fixture
def db(session_factory):
    return Reader(session_factory)


# ══════════════════════════════════════════════════════════════════════════
# Service fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier):
    return NotificationDispatcher(notifier)


@pytest.fixture
def service(dispatcher):
    return ApplicationService(dispatcher, timeout=30)


class ServiceCaller:
    """
    Calls ApplicationService methods with a new session per call, the way
    each HTTP request gets its own unit of work.

        await svc.approve(client, application_id)
    """

    def __init__(self, session_factory, service: ApplicationService):
        self.session_factory = session_factory
        self.service = service

    def __getattr__(self, name):
        method = getattr(self.service, name)

        async def call(*args, **kwargs):
            async with self.session_factory() as session:
                return await method(SqlAlchemyRepository(session), *args, **kwargs)

        return call


@pytest.fixture
def svc(session_factory, service):
    return ServiceCaller(session_factory, service)


# ══════════════════════════════════════════════════════════════════════════
# Seed data
# ══════════════════════════════════════════════════════════════════════════

class Seeder:
    """Inserts collaborator rows and submits applications through the service."""

    def __init__(self, session_factory, service: ApplicationService):
        self.session_factory = session_factory
        self.service = service

    async def project(
        self,
        client_id: Optional[uuid.UUID] = None,
        status: ProjectStatus = ProjectStatus.OPEN,
        budget_max: Optional[Decimal] = Decimal("1000"),
        application_deadline: Optional[datetime] = None,
    ) -> Project:
        project = Project(
            id=uuid.uuid4(),
            client_id=client_id or uuid.uuid4(),
            title="Marketplace payments integration",
            status=status.value,
            budget_max=budget_max,
            application_deadline=application_deadline,
            application_count=0,
        )
        async with self.session_factory() as session:
            session.add(project)
            await session.commit()
        return project

    async def profile(
        self,
        professional_id: uuid.UUID,
        experience_years: int = 5,
        average_rating: Optional[Decimal] = Decimal("4.5"),
        completion_rate: Optional[Decimal] = Decimal("90"),
    ) -> ProfessionalProfile:
        profile = ProfessionalProfile(
            professional_id=professional_id,
            experience_years=experience_years,
            average_rating=average_rating,
            completion_rate=completion_rate,
        )
        async with self.session_factory() as session:
            session.add(profile)
            await session.commit()
        return profile

    async def application(
        self,
        project: Project,
        professional_id: Optional[uuid.UUID] = None,
        proposed_rate: Optional[Decimal] = Decimal("800"),
    ):
        content = ApplicationContent(
            cover_letter=COVER_LETTER,
            proposed_rate=proposed_rate,
            proposed_timeline=30,
        )
        async with self.session_factory() as session:
            return await self.service.submit(
                SqlAlchemyRepository(session),
                professional_id or uuid.uuid4(),
                project.id,
                content,
            )


@pytest.fixture
def seed(session_factory, service):
    return Seeder(session_factory, service)


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, service):
    """
    AsyncClient over ASGITransport with the session and service dependencies
    pointed at this test's database and recording dispatcher.
    """
    from bidboard.database import dispose_engine, get_db_session
    from bidboard.main import app
    from bidboard.routes.deps import get_application_service

    async def _session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_application_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    await dispose_engine()
