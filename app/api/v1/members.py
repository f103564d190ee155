"""
Org membership endpoints.

GET    /api/v1/orgs/{orgSlug}/members             - List members (filtered by visibility)
POST   /api/v1/orgs/{orgSlug}/members             - Invite (or reactivate) a member
PATCH  /api/v1/orgs/{orgSlug}/members/{user_id}   - Change role / default flag
DELETE /api/v1/orgs/{orgSlug}/members/{user_id}   - Deactivate a membership
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, get_org
from app.core.database import get_session
from app.models.organization import Organization
from app.services import memberships as member_service
from tracker_shared.schemas.members import (
    OrgMemberInvite,
    OrgMemberListResponse,
    OrgMemberResponse,
    OrgMemberUpdate,
)

router = APIRouter()


@router.get("", response_model=OrgMemberListResponse, tags=["Members"])
async def list_members(
    org: Organization = Depends(get_org),
    session: AsyncSession = Depends(get_session),
):
    """Members the caller may see. Plain members only see their own row."""
    members = await member_service.list_org_members(org, session)
    return OrgMemberListResponse(data=members)


@router.post("", response_model=OrgMemberResponse, status_code=201, tags=["Members"])
async def invite_member(
    body: OrgMemberInvite,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await member_service.invite_org_member(org, body, auth, session)


@router.patch("/{user_id}", response_model=OrgMemberResponse, tags=["Members"])
async def update_member(
    user_id: uuid.UUID,
    body: OrgMemberUpdate,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. Only owners may grant or revoke the owner role."""
    return await member_service.update_org_member(org, user_id, body, auth, session)


@router.delete("/{user_id}", status_code=204, tags=["Members"])
async def remove_member(
    user_id: uuid.UUID,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Deactivate a membership. The last active owner cannot be removed."""
    await member_service.remove_org_member(org, user_id, auth, session)
