"""
Project service: project CRUD and the per-project workflow settings.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from app.core.auth import AuthenticatedUser, resolve_context
from app.core.enforcement import BYPASS_OPTION, Gatekeeper
from app.models.organization import Organization
from app.models.project import Project, ProjectSettings
from app.models.user_project import UserProject
from app.services.work import WORK_KINDS
from tracker_shared.authz.capabilities import evaluator
from tracker_shared.authz.errors import Forbidden, NotFound
from tracker_shared.schemas.common import Action, OrgEntity, ProjectEntity
from tracker_shared.schemas.projects import (
    ProjectCreate,
    ProjectSettingsRead,
    ProjectUpdate,
    ProjectWorkflowSettings,
)

log = structlog.get_logger()


async def list_projects(org: Organization, session: AsyncSession) -> list[Project]:
    """Projects of the org the caller can access. Others are filtered out, not refused."""
    result = await session.execute(
        select(Project).where(Project.org_id == org.id).order_by(Project.reference)
    )
    return list(result.scalars().all())


async def create_project(
    org: Organization,
    req: ProjectCreate,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> Project:
    context = await resolve_context(session, auth, org.id)
    if not evaluator.has(context, OrgEntity.ORG_PROJECTS, Action.CREATE):
        raise Forbidden()

    project = Project(org_id=org.id, **req.model_dump())
    project = (await Gatekeeper(session).insert(project)).unwrap()
    log.info("project.created", project_id=str(project.id), org_id=str(org.id), reference=project.reference)
    return project


async def update_project(
    org: Organization,
    project: Project,
    req: ProjectUpdate,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> Project:
    context = await resolve_context(session, auth, org.id, project.id)
    if not evaluator.has(context, OrgEntity.ORG_PROJECTS, Action.EDIT):
        raise Forbidden()

    changes = req.model_dump(exclude_unset=True)
    if not changes:
        return project
    project = (await Gatekeeper(session).update(project, changes)).unwrap()
    log.info("project.updated", project_id=str(project.id), fields=sorted(changes))
    return project


async def _dependent_rows(session: AsyncSession, project: Project) -> int:
    total = 0
    for model in [UserProject, ProjectSettings] + [kind.model for kind in WORK_KINDS.values()]:
        result = await session.execute(
            select(func.count())
            .select_from(model)
            .where(model.project_id == project.id)
            .execution_options(**{BYPASS_OPTION: True})
        )
        total += result.scalar_one()
    return total


async def delete_project(
    org: Organization,
    project: Project,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> None:
    """Hard delete. Refused while the project still has a team or records."""
    context = await resolve_context(session, auth, org.id, project.id)
    if not evaluator.has(context, OrgEntity.ORG_PROJECTS, Action.DELETE):
        raise Forbidden()
    if await _dependent_rows(session, project):
        raise HTTPException(status_code=409, detail="Project still has members or records")

    project_id = project.id
    (await Gatekeeper(session).delete(project)).unwrap()
    log.info("project.deleted", project_id=str(project_id), org_id=str(org.id))


# ---------------------------------------------------------------------------
# Project settings
# ---------------------------------------------------------------------------

async def get_project_settings(
    org: Organization,
    project: Project,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> ProjectSettingsRead:
    """Stored settings, or the defaults when none have been saved yet."""
    context = await resolve_context(session, auth, org.id, project.id)
    if not evaluator.has(context, ProjectEntity.SETTINGS, Action.VIEW):
        raise NotFound("Project settings not found")

    result = await session.execute(
        select(ProjectSettings).where(ProjectSettings.project_id == project.id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return ProjectSettingsRead(
            project_id=project.id,
            settings=ProjectWorkflowSettings(),
            updated_at=project.updated_at,
        )
    return ProjectSettingsRead.model_validate(row)


async def put_project_settings(
    org: Organization,
    project: Project,
    settings: ProjectWorkflowSettings,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> ProjectSettings:
    """Replace the project's workflow settings; creates the row on first write."""
    context = await resolve_context(session, auth, org.id, project.id)
    gate = Gatekeeper(session)
    payload = settings.model_dump(mode="json")

    existing = await session.execute(
        select(ProjectSettings)
        .where(ProjectSettings.project_id == project.id)
        .execution_options(**{BYPASS_OPTION: True})
    )
    row = existing.scalar_one_or_none()
    if row is None:
        if not evaluator.has(context, ProjectEntity.SETTINGS, Action.CREATE):
            raise Forbidden()
        row = (await gate.insert(ProjectSettings(project_id=project.id, settings=payload))).unwrap()
    else:
        if not evaluator.has(context, ProjectEntity.SETTINGS, Action.EDIT):
            raise Forbidden()
        row = (await gate.update(row, {"settings": payload})).unwrap()
    log.info("project_settings.updated", project_id=str(project.id))
    return row
