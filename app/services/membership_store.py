"""
SQL-backed MembershipStore.

Reads bypass the read filter (they are what the filter itself is derived
from) and are never cached: each call sees the current rows.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.enforcement import BYPASS_OPTION
from app.models.project import Project
from app.models.user_org import UserOrg
from app.models.user_project import UserProject
from tracker_shared.schemas.memberships import OrgMembership, ProjectMembership


class SqlMembershipStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_org_memberships(self, principal_id: uuid.UUID) -> list[OrgMembership]:
        result = await self.session.execute(
            select(UserOrg)
            .where(UserOrg.user_id == principal_id)
            .order_by(UserOrg.is_default.desc(), UserOrg.joined_at)
            .execution_options(**{BYPASS_OPTION: True})
        )
        return [OrgMembership.model_validate(row) for row in result.scalars().all()]

    async def list_project_memberships(self, principal_id: uuid.UUID) -> list[ProjectMembership]:
        result = await self.session.execute(
            select(UserProject, Project.org_id)
            .join(Project, Project.id == UserProject.project_id)
            .where(UserProject.user_id == principal_id)
            .order_by(UserProject.is_default.desc(), UserProject.assigned_at)
            .execution_options(**{BYPASS_OPTION: True})
        )
        return [
            ProjectMembership(
                user_id=up.user_id,
                project_id=up.project_id,
                org_id=org_id,
                role=up.role,
                is_active=up.is_active,
                is_default=up.is_default,
            )
            for up, org_id in result.all()
        ]

    async def get_project_organization_id(self, project_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.session.execute(
            select(Project.org_id)
            .where(Project.id == project_id)
            .execution_options(**{BYPASS_OPTION: True})
        )
        return result.scalar_one_or_none()
