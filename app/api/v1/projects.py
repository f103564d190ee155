"""
Project endpoints: CRUD, project team and workflow settings.

Projects outside the caller's reach are filtered out of listings and are 404
on direct access, whether or not they exist.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, get_org, get_project_or_404
from app.core.database import get_session
from app.models.organization import Organization
from app.models.project import Project
from app.services import memberships as member_service
from app.services import projects as project_service
from tracker_shared.schemas.members import (
    ProjectMemberAdd,
    ProjectMemberListResponse,
    ProjectMemberResponse,
    ProjectMemberUpdate,
)
from tracker_shared.schemas.projects import (
    ProjectCreate,
    ProjectListResponse,
    ProjectRead,
    ProjectSettingsRead,
    ProjectUpdate,
    ProjectWorkflowSettings,
)

router = APIRouter()


async def get_project(
    project_id: uuid.UUID,
    org: Organization = Depends(get_org),
    session: AsyncSession = Depends(get_session),
) -> Project:
    return await get_project_or_404(session, org, project_id)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    org: Organization = Depends(get_org),
    session: AsyncSession = Depends(get_session),
):
    """List the org's projects the caller can access."""
    projects = await project_service.list_projects(org, session)
    return ProjectListResponse(data=[ProjectRead.model_validate(p) for p in projects])


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    project_in: ProjectCreate,
    org: Organization = Depends(get_org),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await project_service.create_project(org, project_in, auth, session)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project_details(project: Project = Depends(get_project)):
    return project


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_in: ProjectUpdate,
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await project_service.update_project(org, project, project_in, auth, session)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Delete an empty project. Projects with a team or records are refused (409)."""
    await project_service.delete_project(org, project, auth, session)


# ---------------------------------------------------------------------------
# Project Membership
# ---------------------------------------------------------------------------


@router.get("/{project_id}/members", response_model=ProjectMemberListResponse)
async def list_project_members(
    project: Project = Depends(get_project),
    session: AsyncSession = Depends(get_session),
):
    members = await member_service.list_project_members(project, session)
    return ProjectMemberListResponse(data=[ProjectMemberResponse.model_validate(m) for m in members])


@router.post("/{project_id}/members", response_model=ProjectMemberResponse, status_code=201)
async def add_project_member(
    body: ProjectMemberAdd,
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Assign an org member to the project with a project role."""
    return await member_service.add_project_member(org, project, body, auth, session)


@router.patch("/{project_id}/members/{user_id}", response_model=ProjectMemberResponse)
async def update_project_member(
    user_id: uuid.UUID,
    body: ProjectMemberUpdate,
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await member_service.update_project_member(org, project, user_id, body, auth, session)


@router.delete("/{project_id}/members/{user_id}", status_code=204)
async def remove_project_member(
    user_id: uuid.UUID,
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Remove a user from a project (soft deactivation)."""
    await member_service.remove_project_member(org, project, user_id, auth, session)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/{project_id}/settings", response_model=ProjectSettingsRead)
async def get_project_settings(
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await project_service.get_project_settings(org, project, auth, session)


@router.put("/{project_id}/settings", response_model=ProjectSettingsRead)
async def put_project_settings(
    body: ProjectWorkflowSettings,
    org: Organization = Depends(get_org),
    project: Project = Depends(get_project),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Replace the workflow settings. Supplier-side roles may edit; only admins create."""
    row = await project_service.put_project_settings(org, project, body, auth, session)
    return ProjectSettingsRead.model_validate(row)
