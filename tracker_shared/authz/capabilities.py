"""
CapabilityEvaluator: answers "may this context do action X on entity Y".

Pure lookups over the PermissionGrid plus the two cross-axis rules
(system admin bypass, org admin override on project entities). Never raises
and never allows by default: anything unrecognised is a deny.

Timesheets and expenses are owned entities. On top of the grid cell, writes
to them need either an elevated context or ownership of the row.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from tracker_shared.authz import grid
from tracker_shared.authz.resolver import platform_role_of
from tracker_shared.schemas.common import (
    Action,
    OrgEntity,
    OrgRole,
    PlatformRole,
    ProjectEntity,
    ProjectRole,
    StatusTransition,
)
from tracker_shared.schemas.context import EffectiveContext
from tracker_shared.schemas.memberships import Principal

OWNED_ENTITIES = frozenset({ProjectEntity.TIMESHEET, ProjectEntity.EXPENSE})

# Entities carrying the draft -> submitted -> approved/rejected status
WORKFLOW_ENTITIES = OWNED_ENTITIES | frozenset({
    ProjectEntity.MILESTONE,
    ProjectEntity.DELIVERABLE,
    ProjectEntity.VARIATION,
})

# Project roles that act on other people's owned rows
ADMIN_TIER_ROLES = frozenset({ProjectRole.ADMIN, ProjectRole.SUPPLIER_PM})

ORG_CREATOR_ROLES = frozenset({PlatformRole.USER, PlatformRole.SYSTEM_ADMIN})


def _capability_names() -> dict[str, tuple]:
    names = {f"can_{action.value}_{entity.value}": (entity, action) for entity, action in grid.cells()}
    names.update({
        "can_edit_billing": (OrgEntity.ORG_BILLING, Action.EDIT),
        "can_view_billing": (OrgEntity.ORG_BILLING, Action.VIEW),
        "can_invite_members": (OrgEntity.ORG_MEMBERS, Action.INVITE),
        "can_manage_members": (OrgEntity.ORG_MEMBERS, Action.MANAGE),
        "can_create_project": (OrgEntity.ORG_PROJECTS, Action.CREATE),
        "can_manage_team": (ProjectEntity.PROJECT_MEMBERS, Action.MANAGE),
        "can_edit_project_settings": (ProjectEntity.SETTINGS, Action.EDIT),
    })
    return names


DERIVED_CAPABILITIES: dict[str, tuple] = _capability_names()


@dataclass(frozen=True)
class RowOwnership:
    """Who a timesheet/expense row belongs to, relative to the acting principal."""

    actor_id: Optional[uuid.UUID]
    created_by: Optional[uuid.UUID] = None
    resource_user_id: Optional[uuid.UUID] = None

    @property
    def maps_resource(self) -> bool:
        return self.actor_id is not None and self.resource_user_id == self.actor_id

    @property
    def authored(self) -> bool:
        return self.actor_id is not None and self.created_by == self.actor_id

    @property
    def owns(self) -> bool:
        return self.authored or self.maps_resource


class CapabilityEvaluator:
    """Stateless; one module-level instance is shared."""

    def has(self, context: Optional[EffectiveContext], entity, action) -> bool:
        if context is None or not grid.is_cell(entity, action):
            return False
        entity = grid.parse_entity(entity)

        if context.is_system_admin:
            return True
        if grid.is_project_scoped(entity):
            if context.is_org_admin_override:
                return True
            return grid.allows(context.project_role, entity, action)
        return grid.allows(context.org_role, entity, action)

    def can_access_project(self, context: Optional[EffectiveContext]) -> bool:
        if context is None:
            return False
        return context.is_system_admin or context.is_org_admin_override or context.project_role is not None

    def is_elevated(self, context: Optional[EffectiveContext]) -> bool:
        if context is None:
            return False
        if context.is_system_admin or context.is_org_admin_override:
            return True
        return context.project_role in ADMIN_TIER_ROLES

    def is_project_admin(self, context: Optional[EffectiveContext]) -> bool:
        """Project admins (and the bypass/override contexts) may delete records in any state."""
        if context is None:
            return False
        if context.is_system_admin or context.is_org_admin_override:
            return True
        return context.project_role == ProjectRole.ADMIN

    def is_owner_tier(self, context: Optional[EffectiveContext]) -> bool:
        """Only owner-tier contexts may grant or revoke org_owner."""
        if context is None:
            return False
        return context.is_system_admin or context.org_role == OrgRole.ORG_OWNER

    def can_write_row(
        self,
        context: Optional[EffectiveContext],
        entity,
        action,
        ownership: RowOwnership,
    ) -> bool:
        """Grid cell plus, for owned entities, the ownership rule."""
        if not self.has(context, entity, action):
            return False
        entity = grid.parse_entity(entity)
        action = grid.parse_action(action)
        if entity not in OWNED_ENTITIES or action in (Action.VIEW, Action.APPROVE):
            return True
        if self.is_elevated(context):
            return True
        if action == Action.CREATE:
            return ownership.maps_resource
        return ownership.owns

    def can_transition(
        self,
        context: Optional[EffectiveContext],
        entity,
        transition,
        ownership: RowOwnership,
    ) -> bool:
        """submit follows the edit rule; approve and reject follow the approve cell."""
        try:
            transition = StatusTransition(transition)
        except ValueError:
            return False
        if grid.parse_entity(entity) not in WORKFLOW_ENTITIES:
            return False
        if transition == StatusTransition.SUBMIT:
            return self.can_write_row(context, entity, Action.EDIT, ownership)
        return self.has(context, entity, Action.APPROVE)

    def can_create_organization(self, principal: Principal) -> bool:
        return platform_role_of(principal) in ORG_CREATOR_ROLES

    def capability_set(self, context: Optional[EffectiveContext]) -> dict[str, bool]:
        capabilities = {
            name: self.has(context, entity, action)
            for name, (entity, action) in DERIVED_CAPABILITIES.items()
        }
        capabilities["can_access_project"] = self.can_access_project(context)
        return capabilities


evaluator = CapabilityEvaluator()
