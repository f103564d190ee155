"""
Data-access enforcement: the boundary no request can skip.

- Table guards: per protected table, the view/insert/update/delete SQL
  predicates (plus transition for workflow tables), built from app.core.predicates.
- Read filter: a do_orm_execute hook on GuardedSession adds each guard's view
  predicate to every ORM select touching a protected model. Rows failing it
  are simply absent. Statements carrying bypass_enforcement=True skip it.
- Gatekeeper: every mutation of a protected table. Visibility first
  (NotFound), then the predicate on the stored row and on the new values
  (Forbidden). Permitted writes leave a ChangeRecord.

The acting principal is always session.info["actor_id"], set by
authentication. The View As overlay never reaches this module.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria

from app.core import predicates as p
from app.models import (
    ChangeRecord,
    Deliverable,
    Expense,
    Milestone,
    Organization,
    Project,
    ProjectSettings,
    Resource,
    Timesheet,
    UserOrg,
    UserProject,
    Variation,
)
from app.services.audit import record_change, snapshot
from tracker_shared.authz.capabilities import WORKFLOW_ENTITIES
from tracker_shared.authz.errors import AuthorizationError, Forbidden, NotFound, Unauthorized
from tracker_shared.schemas.common import Action, OrgEntity, OrgRole, ProjectEntity, StatusTransition

log = structlog.get_logger()

BYPASS_OPTION = "bypass_enforcement"


# ---------------------------------------------------------------------------
# Row terms
# ---------------------------------------------------------------------------

class RowTerms:
    """Candidate row as typed SQL literals, addressable like table.c."""

    def __init__(self, model, values: dict):
        self._table = model.__table__
        self._values = values

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            column = self._table.c[name]
        except KeyError:
            raise AttributeError(name) from None
        return sa.literal(self._values.get(name), type_=column.type)

    @classmethod
    def of(cls, instance, **overrides) -> "RowTerms":
        values = {column.name: getattr(instance, column.name) for column in instance.__table__.columns}
        values.update(overrides)
        return cls(type(instance), values)


# ---------------------------------------------------------------------------
# Table guards
# ---------------------------------------------------------------------------

class TableGuard:
    """Predicates for one protected table. `row` is table.c or RowTerms."""

    def __init__(self, model):
        self.model = model

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    @property
    def columns(self):
        return self.model.__table__.c

    def view(self, actor_id, row):
        raise NotImplementedError

    def insert(self, actor_id, row):
        return sa.false()

    def update(self, actor_id, row):
        return sa.false()

    def delete(self, actor_id, row):
        return sa.false()

    def transition(self, actor_id, row, transition: StatusTransition):
        return sa.false()

    async def org_id_for(self, session: AsyncSession, instance) -> Optional[uuid.UUID]:
        return getattr(instance, "org_id", None)


class OrganizationGuard(TableGuard):
    def view(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORGANIZATION, Action.VIEW, row.id)

    def insert(self, actor_id, row):
        return p.can_create_organization(actor_id)

    def update(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORGANIZATION, Action.EDIT, row.id)

    def delete(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORGANIZATION, Action.DELETE, row.id)

    async def org_id_for(self, session, instance):
        return instance.id


class OrgMembershipGuard(TableGuard):
    def view(self, actor_id, row):
        return sa.or_(
            row.user_id == actor_id,
            p.org_cell(actor_id, OrgEntity.ORG_MEMBERS, Action.VIEW, row.org_id),
        )

    def _owner_rule(self, actor_id, row):
        # org_owner rows are granted and revoked by owner-tier contexts only
        return sa.or_(row.role != OrgRole.ORG_OWNER.value, p.is_owner_tier(actor_id, row.org_id))

    def insert(self, actor_id, row):
        return sa.and_(
            p.org_cell(actor_id, OrgEntity.ORG_MEMBERS, Action.INVITE, row.org_id),
            self._owner_rule(actor_id, row),
        )

    def update(self, actor_id, row):
        return sa.and_(
            p.org_cell(actor_id, OrgEntity.ORG_MEMBERS, Action.MANAGE, row.org_id),
            self._owner_rule(actor_id, row),
        )

    delete = update


class ProjectGuard(TableGuard):
    def view(self, actor_id, row):
        return p.can_access_project(actor_id, row.id)

    def insert(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORG_PROJECTS, Action.CREATE, row.org_id)

    def update(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORG_PROJECTS, Action.EDIT, row.org_id)

    def delete(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORG_PROJECTS, Action.DELETE, row.org_id)


class _ProjectScopedGuard(TableGuard):
    async def org_id_for(self, session, instance):
        result = await session.execute(
            sa.select(Project.org_id)
            .where(Project.id == instance.project_id)
            .execution_options(**{BYPASS_OPTION: True})
        )
        return result.scalar_one_or_none()


class ProjectMembershipGuard(_ProjectScopedGuard):
    def view(self, actor_id, row):
        return sa.or_(
            row.user_id == actor_id,
            p.project_cell(actor_id, ProjectEntity.PROJECT_MEMBERS, Action.VIEW, row.project_id),
        )

    def insert(self, actor_id, row):
        return p.project_cell(actor_id, ProjectEntity.PROJECT_MEMBERS, Action.MANAGE, row.project_id)

    update = insert
    delete = insert


class ProjectEntityGuard(_ProjectScopedGuard):
    """Plain grid cells on the row's project. submit needs edit, approve/reject need approve."""

    def __init__(self, model, entity: ProjectEntity):
        super().__init__(model)
        self.entity = entity

    def _cell(self, actor_id, action, row):
        return p.project_cell(actor_id, self.entity, action, row.project_id)

    def view(self, actor_id, row):
        return self._cell(actor_id, Action.VIEW, row)

    def insert(self, actor_id, row):
        return self._cell(actor_id, Action.CREATE, row)

    def update(self, actor_id, row):
        return self._cell(actor_id, Action.EDIT, row)

    def delete(self, actor_id, row):
        return self._cell(actor_id, Action.DELETE, row)

    def transition(self, actor_id, row, transition):
        if self.entity not in WORKFLOW_ENTITIES:
            return sa.false()
        if StatusTransition(transition) == StatusTransition.SUBMIT:
            return self.update(actor_id, row)
        return self._cell(actor_id, Action.APPROVE, row)


class OwnedEntityGuard(ProjectEntityGuard):
    """Timesheets and expenses: grid cell AND (elevated OR owner)."""

    def _owns(self, actor_id, row):
        return sa.or_(
            p.is_elevated(actor_id, row.project_id),
            row.created_by == actor_id,
            p.resource_maps_to(actor_id, row.resource_id),
        )

    def insert(self, actor_id, row):
        return sa.and_(
            self._cell(actor_id, Action.CREATE, row),
            sa.or_(
                p.is_elevated(actor_id, row.project_id),
                p.resource_maps_to(actor_id, row.resource_id),
            ),
        )

    def update(self, actor_id, row):
        return sa.and_(self._cell(actor_id, Action.EDIT, row), self._owns(actor_id, row))

    def delete(self, actor_id, row):
        return sa.and_(self._cell(actor_id, Action.DELETE, row), self._owns(actor_id, row))


class ChangeRecordGuard(TableGuard):
    """Readable by whoever may view the org's settings; written only by the Gatekeeper."""

    def view(self, actor_id, row):
        return p.org_cell(actor_id, OrgEntity.ORG_SETTINGS, Action.VIEW, row.org_id)


GUARDS: dict[type, TableGuard] = {
    Organization: OrganizationGuard(Organization),
    UserOrg: OrgMembershipGuard(UserOrg),
    Project: ProjectGuard(Project),
    UserProject: ProjectMembershipGuard(UserProject),
    Timesheet: OwnedEntityGuard(Timesheet, ProjectEntity.TIMESHEET),
    Expense: OwnedEntityGuard(Expense, ProjectEntity.EXPENSE),
    Milestone: ProjectEntityGuard(Milestone, ProjectEntity.MILESTONE),
    Deliverable: ProjectEntityGuard(Deliverable, ProjectEntity.DELIVERABLE),
    Resource: ProjectEntityGuard(Resource, ProjectEntity.RESOURCE),
    Variation: ProjectEntityGuard(Variation, ProjectEntity.VARIATION),
    ProjectSettings: ProjectEntityGuard(ProjectSettings, ProjectEntity.SETTINGS),
    ChangeRecord: ChangeRecordGuard(ChangeRecord),
}


def guard_for(model_or_instance) -> TableGuard:
    model = model_or_instance if isinstance(model_or_instance, type) else type(model_or_instance)
    return GUARDS[model]


# ---------------------------------------------------------------------------
# Read filter
# ---------------------------------------------------------------------------

class GuardedSession(Session):
    """Sync session class behind every AsyncSession; carries the read filter."""


@event.listens_for(GuardedSession, "do_orm_execute")
def _filter_guarded_reads(state: ORMExecuteState) -> None:
    if not state.is_select or state.is_column_load or state.is_relationship_load:
        return
    if state.execution_options.get(BYPASS_OPTION, False):
        return

    actor_id = state.session.info.get("actor_id")
    options = []
    for mapper in state.all_mappers:
        guard = GUARDS.get(mapper.class_)
        if guard is None:
            continue
        criteria = guard.view(actor_id, guard.columns) if actor_id is not None else sa.false()
        options.append(with_loader_criteria(mapper.class_, criteria))
    if options:
        state.statement = state.statement.options(*options)


# ---------------------------------------------------------------------------
# Write gate
# ---------------------------------------------------------------------------

@dataclass
class WriteResult:
    ok: bool
    row: Any = None
    error: Optional[AuthorizationError] = None

    def unwrap(self):
        """Return the row, raising the denial for callers that surface it."""
        if not self.ok:
            raise self.error
        return self.row


class Gatekeeper:
    """Every write to a protected table goes through here. Denials are returned, not raised."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def actor_id(self) -> Optional[uuid.UUID]:
        return self.session.info.get("actor_id")

    async def _allowed(self, predicate) -> bool:
        return bool(await self.session.scalar(sa.select(predicate)))

    async def _visible(self, instance) -> bool:
        model = type(instance)
        primary_key = sa.inspect(model).primary_key
        stmt = sa.select(model).where(
            *[column == getattr(instance, column.name) for column in primary_key]
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    def _deny(self, error: AuthorizationError, guard: TableGuard, action: str) -> WriteResult:
        log.info(
            "authz.write_denied",
            table=guard.table_name,
            action=action,
            actor_id=str(self.actor_id) if self.actor_id else None,
            code=error.code,
        )
        return WriteResult(ok=False, error=error)

    async def _record(
        self, guard: TableGuard, instance, action: str, before: Optional[dict], comment: Optional[str] = None
    ) -> None:
        await record_change(
            self.session,
            table_name=guard.table_name,
            record_id=_record_id(instance),
            org_id=await guard.org_id_for(self.session, instance),
            actor_id=self.actor_id,
            action=action,
            before=before,
            after=snapshot(instance) if action != "delete" else None,
            comment=comment,
        )

    async def insert(self, instance) -> WriteResult:
        guard = guard_for(instance)
        if self.actor_id is None:
            return self._deny(Unauthorized(), guard, "insert")
        if not await self._allowed(guard.insert(self.actor_id, RowTerms.of(instance))):
            return self._deny(Forbidden(), guard, "insert")

        self.session.add(instance)
        await self.session.flush()
        await self._record(guard, instance, "insert", before=None)
        return WriteResult(ok=True, row=instance)

    async def update(self, instance, changes: dict) -> WriteResult:
        guard = guard_for(instance)
        denied = await self._check_existing(guard, instance, "update")
        if denied:
            return denied
        if not await self._allowed(guard.update(self.actor_id, RowTerms.of(instance))):
            return self._deny(Forbidden(), guard, "update")
        if not await self._allowed(guard.update(self.actor_id, RowTerms.of(instance, **changes))):
            return self._deny(Forbidden(), guard, "update")

        before = snapshot(instance)
        for key, value in changes.items():
            setattr(instance, key, value)
        await self.session.flush()
        await self._record(guard, instance, "update", before=before)
        return WriteResult(ok=True, row=instance)

    async def transition(
        self, instance, transition: StatusTransition, new_status: str, comment: Optional[str] = None
    ) -> WriteResult:
        guard = guard_for(instance)
        denied = await self._check_existing(guard, instance, "transition")
        if denied:
            return denied
        if not await self._allowed(guard.transition(self.actor_id, RowTerms.of(instance), transition)):
            return self._deny(Forbidden(), guard, "transition")
        new_row = RowTerms.of(instance, status=new_status)
        if not await self._allowed(guard.transition(self.actor_id, new_row, transition)):
            return self._deny(Forbidden(), guard, "transition")

        before = snapshot(instance)
        instance.status = new_status
        await self.session.flush()
        await self._record(guard, instance, "transition", before=before, comment=comment)
        return WriteResult(ok=True, row=instance)

    async def delete(self, instance) -> WriteResult:
        guard = guard_for(instance)
        denied = await self._check_existing(guard, instance, "delete")
        if denied:
            return denied
        if not await self._allowed(guard.delete(self.actor_id, RowTerms.of(instance))):
            return self._deny(Forbidden(), guard, "delete")

        before = snapshot(instance)
        await self._record(guard, instance, "delete", before=before)
        await self.session.delete(instance)
        await self.session.flush()
        return WriteResult(ok=True, row=instance)

    async def deactivate(self, instance) -> WriteResult:
        """Soft delete (is_active = false), gated by the delete predicate."""
        guard = guard_for(instance)
        denied = await self._check_existing(guard, instance, "deactivate")
        if denied:
            return denied
        if not await self._allowed(guard.delete(self.actor_id, RowTerms.of(instance))):
            return self._deny(Forbidden(), guard, "deactivate")

        before = snapshot(instance)
        instance.is_active = False
        await self.session.flush()
        await self._record(guard, instance, "deactivate", before=before)
        return WriteResult(ok=True, row=instance)

    async def _check_existing(self, guard: TableGuard, instance, action: str) -> Optional[WriteResult]:
        if self.actor_id is None:
            return self._deny(Unauthorized(), guard, action)
        if not await self._visible(instance):
            return self._deny(NotFound(), guard, action)
        return None


def _record_id(instance) -> str:
    primary_key = sa.inspect(type(instance)).primary_key
    return ":".join(str(getattr(instance, column.name)) for column in primary_key)
