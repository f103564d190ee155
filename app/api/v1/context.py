"""
Effective context and the View As overlay.

GET    /api/v1/orgs/{orgSlug}/context            - Real/effective context and capabilities
POST   /api/v1/orgs/{orgSlug}/context/view-as    - Preview the UI as a lower role
DELETE /api/v1/orgs/{orgSlug}/context/view-as    - Stop previewing

View As only changes what is returned here. Every write and read still runs
as the authenticated user.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    decode_view_as,
    encode_view_as,
    get_authenticated_user,
    get_org,
    resolve_context,
)
from app.core.config import get_settings
from app.core.database import get_session
from app.models.organization import Organization
from tracker_shared.authz.capabilities import evaluator
from tracker_shared.authz.impersonation import ViewAsOverlay
from tracker_shared.schemas.context import ContextResponse, ViewAsRequest, flatten

router = APIRouter()
settings = get_settings()
log = structlog.get_logger()


def _describe(org: Organization, project_id: Optional[uuid.UUID], overlay: ViewAsOverlay) -> ContextResponse:
    return ContextResponse(
        org_id=org.id,
        project_id=project_id,
        real=flatten(overlay.real),
        effective=flatten(overlay.effective),
        is_impersonating=overlay.is_impersonating,
        view_as=overlay.role.value if overlay.role is not None else None,
        capabilities=evaluator.capability_set(overlay.effective),
    )


@router.get("", response_model=ContextResponse, tags=["Context"])
async def get_context(
    request: Request,
    project_id: Optional[uuid.UUID] = Query(None),
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """The caller's context for this org (and project), with View As applied for display."""
    overlay = ViewAsOverlay(await resolve_context(session, auth, org.id, project_id))
    role = decode_view_as(request.cookies.get(settings.view_as_cookie_name), auth.user_id, org.id)
    if role and overlay.can_impersonate:
        try:
            overlay.set_view_as(role)
        except ValueError:
            log.info("view_as.role_ignored", user_id=str(auth.user_id), role=role)
    return _describe(org, project_id, overlay)


@router.post("/view-as", response_model=ContextResponse, tags=["Context"])
async def set_view_as(
    body: ViewAsRequest,
    response: Response,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Start previewing as `role`. Administrators only."""
    overlay = ViewAsOverlay(await resolve_context(session, auth, org.id))
    try:
        overlay.set_view_as(body.role)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    response.set_cookie(
        key=settings.view_as_cookie_name,
        value=encode_view_as(auth.user_id, org.id, overlay.role.value),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    log.info("view_as.started", user_id=str(auth.user_id), org_id=str(org.id), role=overlay.role.value)
    return _describe(org, None, overlay)


@router.delete("/view-as", response_model=ContextResponse, tags=["Context"])
async def clear_view_as(
    response: Response,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    overlay = ViewAsOverlay(await resolve_context(session, auth, org.id))
    overlay.clear()
    response.delete_cookie(settings.view_as_cookie_name)
    log.info("view_as.cleared", user_id=str(auth.user_id), org_id=str(org.id))
    return _describe(org, None, overlay)
