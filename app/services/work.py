"""
Work entity service: CRUD and status transitions for the per-project records.

Reads go through the read filter. Writes are checked with the evaluator
(including the ownership rule for timesheets and expenses) and then
re-checked by the Gatekeeper in SQL.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser, resolve_context
from app.core.enforcement import BYPASS_OPTION, Gatekeeper
from app.models import Deliverable, Expense, Milestone, Resource, Timesheet, Variation
from app.models.organization import Organization
from app.models.project import Project
from tracker_shared.authz.capabilities import OWNED_ENTITIES, WORKFLOW_ENTITIES, RowOwnership, evaluator
from tracker_shared.authz.errors import Forbidden, NotFound
from tracker_shared.schemas import work as work_schemas
from tracker_shared.schemas.common import Action, ProjectEntity, StatusTransition, WorkStatus

log = structlog.get_logger()


@dataclass(frozen=True)
class WorkKind:
    """Wiring for one work entity: model, grid entity and API schemas."""

    path: str
    model: type
    entity: ProjectEntity
    create_schema: type
    update_schema: type
    read_schema: type

    @property
    def owned(self) -> bool:
        return self.entity in OWNED_ENTITIES

    @property
    def has_workflow(self) -> bool:
        return self.entity in WORKFLOW_ENTITIES


WORK_KINDS: dict[str, WorkKind] = {
    kind.path: kind
    for kind in (
        WorkKind("resources", Resource, ProjectEntity.RESOURCE,
                 work_schemas.ResourceCreate, work_schemas.ResourceUpdate, work_schemas.ResourceRead),
        WorkKind("timesheets", Timesheet, ProjectEntity.TIMESHEET,
                 work_schemas.TimesheetCreate, work_schemas.TimesheetUpdate, work_schemas.TimesheetRead),
        WorkKind("expenses", Expense, ProjectEntity.EXPENSE,
                 work_schemas.ExpenseCreate, work_schemas.ExpenseUpdate, work_schemas.ExpenseRead),
        WorkKind("milestones", Milestone, ProjectEntity.MILESTONE,
                 work_schemas.MilestoneCreate, work_schemas.MilestoneUpdate, work_schemas.MilestoneRead),
        WorkKind("deliverables", Deliverable, ProjectEntity.DELIVERABLE,
                 work_schemas.DeliverableCreate, work_schemas.DeliverableUpdate, work_schemas.DeliverableRead),
        WorkKind("variations", Variation, ProjectEntity.VARIATION,
                 work_schemas.VariationCreate, work_schemas.VariationUpdate, work_schemas.VariationRead),
    )
}


async def _resource_user_id(session: AsyncSession, project_id: uuid.UUID, resource_id) -> Optional[uuid.UUID]:
    """The login a resource maps to. Resources outside the project are rejected."""
    result = await session.execute(
        select(Resource.user_id, Resource.project_id)
        .where(Resource.id == resource_id)
        .execution_options(**{BYPASS_OPTION: True})
    )
    row = result.one_or_none()
    if row is None or row.project_id != project_id:
        raise HTTPException(status_code=422, detail="Resource does not belong to this project")
    return row.user_id


async def _check_milestone(session: AsyncSession, project_id: uuid.UUID, milestone_id) -> None:
    if milestone_id is None:
        return
    result = await session.execute(
        select(Milestone.project_id)
        .where(Milestone.id == milestone_id)
        .execution_options(**{BYPASS_OPTION: True})
    )
    if result.scalar_one_or_none() != project_id:
        raise HTTPException(status_code=422, detail="Milestone does not belong to this project")


async def _ownership(session: AsyncSession, auth: AuthenticatedUser, row) -> RowOwnership:
    return RowOwnership(
        actor_id=auth.user_id,
        created_by=getattr(row, "created_by", None),
        resource_user_id=await _resource_user_id(session, row.project_id, row.resource_id),
    )


async def list_rows(kind: WorkKind, project: Project, session: AsyncSession) -> list:
    result = await session.execute(
        select(kind.model)
        .where(kind.model.project_id == project.id)
        .order_by(kind.model.created_at)
    )
    return list(result.scalars().all())


async def get_row(kind: WorkKind, project: Project, row_id: uuid.UUID, session: AsyncSession):
    result = await session.execute(
        select(kind.model).where(kind.model.id == row_id, kind.model.project_id == project.id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFound(f"{kind.entity.value.capitalize()} not found")
    return row


async def create_row(
    kind: WorkKind,
    org: Organization,
    project: Project,
    values: dict,
    auth: AuthenticatedUser,
    session: AsyncSession,
):
    context = await resolve_context(session, auth, org.id, project.id)
    if kind.entity == ProjectEntity.DELIVERABLE:
        await _check_milestone(session, project.id, values.get("milestone_id"))
    row = kind.model(project_id=project.id, **values)
    if kind.has_workflow:
        row.status = WorkStatus.DRAFT.value
    if kind.owned:
        row.created_by = auth.user_id
        ownership = await _ownership(session, auth, row)
    else:
        ownership = RowOwnership(actor_id=auth.user_id)

    if not evaluator.can_write_row(context, kind.entity, Action.CREATE, ownership):
        raise Forbidden()
    row = (await Gatekeeper(session).insert(row)).unwrap()
    log.info("work.created", entity=kind.entity.value, id=str(row.id), project_id=str(project.id))
    return row


async def update_row(
    kind: WorkKind,
    org: Organization,
    project: Project,
    row_id: uuid.UUID,
    changes: dict,
    auth: AuthenticatedUser,
    session: AsyncSession,
):
    context = await resolve_context(session, auth, org.id, project.id)
    row = await get_row(kind, project, row_id, session)
    ownership = await _ownership(session, auth, row) if kind.owned else RowOwnership(actor_id=auth.user_id)
    if not evaluator.can_write_row(context, kind.entity, Action.EDIT, ownership):
        raise Forbidden()
    if kind.has_workflow and not work_schemas.is_editable(row.status):
        raise HTTPException(status_code=409, detail=f"A {row.status} record cannot be edited")
    if kind.entity == ProjectEntity.DELIVERABLE and "milestone_id" in changes:
        await _check_milestone(session, project.id, changes["milestone_id"])

    row = (await Gatekeeper(session).update(row, changes)).unwrap()
    log.info("work.updated", entity=kind.entity.value, id=str(row.id), fields=sorted(changes))
    return row


async def delete_row(
    kind: WorkKind,
    org: Organization,
    project: Project,
    row_id: uuid.UUID,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> None:
    context = await resolve_context(session, auth, org.id, project.id)
    row = await get_row(kind, project, row_id, session)
    ownership = await _ownership(session, auth, row) if kind.owned else RowOwnership(actor_id=auth.user_id)
    if not evaluator.can_write_row(context, kind.entity, Action.DELETE, ownership):
        raise Forbidden()
    if (
        kind.has_workflow
        and not work_schemas.is_deletable(row.status)
        and not evaluator.is_project_admin(context)
    ):
        raise HTTPException(status_code=409, detail=f"A {row.status} record cannot be deleted")

    (await Gatekeeper(session).delete(row)).unwrap()
    log.info("work.deleted", entity=kind.entity.value, id=str(row_id))


async def transition_row(
    kind: WorkKind,
    org: Organization,
    project: Project,
    row_id: uuid.UUID,
    transition: StatusTransition,
    auth: AuthenticatedUser,
    session: AsyncSession,
    comment: Optional[str] = None,
):
    """Move a workflow record through draft -> submitted -> approved/rejected."""
    if not kind.has_workflow:
        raise HTTPException(status_code=404, detail="Not Found")
    context = await resolve_context(session, auth, org.id, project.id)
    row = await get_row(kind, project, row_id, session)
    ownership = await _ownership(session, auth, row) if kind.owned else RowOwnership(actor_id=auth.user_id)
    if not evaluator.can_transition(context, kind.entity, transition, ownership):
        raise Forbidden()

    current = WorkStatus(row.status)
    is_valid, error_msg = work_schemas.validate_status_transition(current, transition)
    if not is_valid:
        raise HTTPException(status_code=422, detail=error_msg)

    new_status = work_schemas.target_status(transition).value
    row = (await Gatekeeper(session).transition(row, transition, new_status, comment=comment)).unwrap()
    log.info(
        "work.transitioned",
        entity=kind.entity.value,
        id=str(row.id),
        from_status=current.value,
        to_status=new_status,
        has_comment=comment is not None,
    )
    return row

