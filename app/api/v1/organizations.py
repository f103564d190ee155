"""
Organization API endpoints.

GET    /api/v1/orgs              - List orgs visible to the authenticated user
POST   /api/v1/orgs              - Create a new org (creator becomes owner)
GET    /api/v1/orgs/{orgSlug}    - Get org details
PATCH  /api/v1/orgs/{orgSlug}    - Update org name/settings
DELETE /api/v1/orgs/{orgSlug}    - Soft-delete the org
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, get_org
from app.core.database import get_session
from app.models.organization import Organization
from app.services import organizations as org_service
from tracker_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
    OrgUpdateRequest,
)

# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgSlug in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """List orgs visible to the authenticated user."""
    items = await org_service.list_user_orgs(auth.user_id, session)
    return OrgListResponse(data=items)


@router_global.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, auth, session)
    return OrgResponse.model_validate(org)


# ---------------------------------------------------------------------------
# Org-scoped routes (orgSlug in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org_details(org: Organization = Depends(get_org)):
    """Get org details including settings."""
    return OrgResponse.model_validate(org)


@router_scoped.patch("", response_model=OrgResponse, tags=["Organizations"])
async def update_org(
    body: OrgUpdateRequest,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Update org name or settings. Settings are deep-merged."""
    org = await org_service.update_org(org, body, auth, session)
    return OrgResponse.model_validate(org)


@router_scoped.delete("", response_model=OrgResponse, tags=["Organizations"])
async def delete_org(
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Soft-delete the org (owner only)."""
    org = await org_service.deactivate_org(org, auth, session)
    return OrgResponse.model_validate(org)
