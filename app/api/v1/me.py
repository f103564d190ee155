"""
Current principal: memberships and the active org/project selection.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.database import get_session
from app.models.organization import Organization
from app.models.project import Project
from app.services.membership_store import SqlMembershipStore
from tracker_shared.schemas.members import MembershipSummary, MeResponse
from tracker_shared.schemas.memberships import select_active

router = APIRouter()


async def _names(session: AsyncSession, model, ids: list[uuid.UUID]) -> dict[uuid.UUID, str]:
    if not ids:
        return {}
    result = await session.execute(select(model.id, model.name).where(model.id.in_(ids)))
    return {row.id: row.name for row in result.all()}


@router.get("/me", response_model=MeResponse, tags=["Me"])
async def get_me(
    org_id: Optional[uuid.UUID] = Query(None, description="Requested active org"),
    project_id: Optional[uuid.UUID] = Query(None, description="Requested active project"),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """The principal, their active memberships (default first) and the active selection."""
    store = SqlMembershipStore(session)
    org_memberships = [m for m in await store.list_org_memberships(auth.user_id) if m.is_active]
    project_memberships = [m for m in await store.list_project_memberships(auth.user_id) if m.is_active]

    org_names = await _names(session, Organization, [m.org_id for m in org_memberships])
    project_names = await _names(session, Project, [m.project_id for m in project_memberships])

    return MeResponse(
        id=auth.user_id,
        email=auth.user.email,
        display_name=auth.user.display_name,
        platform_role=auth.user.platform_role,
        organizations=[
            MembershipSummary(id=m.org_id, role=m.role, is_default=m.is_default, name=org_names.get(m.org_id))
            for m in org_memberships
        ],
        projects=[
            MembershipSummary(
                id=m.project_id, role=m.role, is_default=m.is_default, name=project_names.get(m.project_id)
            )
            for m in project_memberships
        ],
        active=select_active(org_memberships, project_memberships, org_id, project_id),
    )
