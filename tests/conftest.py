"""
Shared fixtures: in-memory SQLite database, seeded users and an HTTP client.
"""

from __future__ import annotations

import os

os.environ.setdefault("PT_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PT_COOKIE_SECURE", "false")
os.environ.setdefault("PT_LOG_FORMAT", "console")

import uuid
from datetime import date
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.auth import create_jwt
from app.core.database import build_session_factory, get_session, init_db
from app.main import app
from app.models import (
    Deliverable,
    Milestone,
    Organization,
    Project,
    Resource,
    Timesheet,
    User,
    UserOrg,
    UserProject,
    Variation,
)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    """A session for assertions. Bind an actor with session.info["actor_id"]."""
    async with session_factory() as s:
        yield s


class Seeder:
    """Writes fixture rows directly, outside the Gatekeeper."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def _add(self, *rows):
        async with self.session_factory() as s:
            s.add_all(rows)
            await s.commit()
        return rows[0]

    async def user(self, platform_role: str = "user", email: Optional[str] = None) -> User:
        uid = uuid.uuid4()
        return await self._add(
            User(id=uid, email=email or f"{uid.hex[:8]}@acme.io", display_name="Test User",
                 platform_role=platform_role)
        )

    async def org(self, slug: Optional[str] = None, name: str = "Acme") -> Organization:
        return await self._add(
            Organization(name=name, slug=slug or f"org-{uuid.uuid4().hex[:8]}", settings={})
        )

    async def org_member(self, user: User, org: Organization, role: str, **kwargs) -> UserOrg:
        return await self._add(UserOrg(user_id=user.id, org_id=org.id, role=role, **kwargs))

    async def project(self, org: Organization, name: str = "Bridge", reference: str = "PRJ-1") -> Project:
        return await self._add(Project(org_id=org.id, name=name, reference=reference))

    async def project_member(self, user: User, project: Project, role: str, **kwargs) -> UserProject:
        return await self._add(UserProject(user_id=user.id, project_id=project.id, role=role, **kwargs))

    async def resource(self, project: Project, user: Optional[User] = None, name: str = "Engineer") -> Resource:
        return await self._add(
            Resource(project_id=project.id, user_id=user.id if user else None, name=name)
        )

    async def timesheet(
        self,
        project: Project,
        resource: Resource,
        created_by: Optional[User] = None,
        status: str = "draft",
    ) -> Timesheet:
        return await self._add(
            Timesheet(
                project_id=project.id,
                resource_id=resource.id,
                work_date=date(2024, 3, 4),
                hours=7.5,
                status=status,
                created_by=created_by.id if created_by else None,
            )
        )

    async def milestone(self, project: Project, name: str = "Design", status: str = "draft") -> Milestone:
        return await self._add(Milestone(project_id=project.id, name=name, status=status))

    async def deliverable(
        self, project: Project, milestone: Optional[Milestone] = None, status: str = "draft"
    ) -> Deliverable:
        return await self._add(
            Deliverable(
                project_id=project.id,
                milestone_id=milestone.id if milestone else None,
                name="Report",
                status=status,
            )
        )

    async def variation(self, project: Project, status: str = "draft") -> Variation:
        return await self._add(Variation(project_id=project.id, title="Extra pier", cost_impact=1200, status=status))


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory):
    async def _session_override():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _session_override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    token, _ = create_jwt(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login():
    """Bearer headers for a seeded user."""
    return auth_headers
