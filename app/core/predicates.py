"""
SQL mirror of context resolution.

Each helper is an EXISTS over fresh anonymous aliases of the identity and
membership tables. Aliases are plain Core tables, so the read filter in
app.core.enforcement never applies to them, and they never correlate with the
statement they are embedded in (the SECURITY DEFINER equivalent).

Role sets always come from tracker_shared.authz.grid; an empty set renders
as false, so an off-grid role can never match.
"""

from __future__ import annotations

import sqlalchemy as sa

from app.models import Project, Resource, User, UserOrg, UserProject
from tracker_shared.authz import grid
from tracker_shared.authz.capabilities import ADMIN_TIER_ROLES, ORG_CREATOR_ROLES
from tracker_shared.schemas.common import ORG_ADMIN_ROLES, OrgRole, PlatformRole, ProjectRole

ALL_ORG_ROLES = frozenset(OrgRole)
ALL_PROJECT_ROLES = frozenset(ProjectRole)


def _values(roles) -> list[str]:
    return sorted(role.value for role in roles)


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------

def is_system_admin(actor_id):
    u = User.__table__.alias()
    return (
        sa.select(u.c.id)
        .where(u.c.id == actor_id, u.c.platform_role == PlatformRole.SYSTEM_ADMIN.value)
        .exists()
    )


def can_create_organization(actor_id):
    u = User.__table__.alias()
    return (
        sa.select(u.c.id)
        .where(u.c.id == actor_id, u.c.platform_role.in_(_values(ORG_CREATOR_ROLES)))
        .exists()
    )


# ---------------------------------------------------------------------------
# Membership helpers
# ---------------------------------------------------------------------------

def has_org_role(actor_id, org_id, roles):
    """Active org membership holding one of `roles`."""
    values = _values(roles)
    if not values:
        return sa.false()
    uo = UserOrg.__table__.alias()
    return (
        sa.select(uo.c.user_id)
        .where(
            uo.c.user_id == actor_id,
            uo.c.org_id == org_id,
            uo.c.is_active.is_(True),
            uo.c.role.in_(values),
        )
        .exists()
    )


def is_project_org_admin(actor_id, project_id):
    """Org owner/admin of the organization the project belongs to."""
    p = Project.__table__.alias()
    uo = UserOrg.__table__.alias()
    return (
        sa.select(p.c.id)
        .where(
            p.c.id == project_id,
            uo.c.org_id == p.c.org_id,
            uo.c.user_id == actor_id,
            uo.c.is_active.is_(True),
            uo.c.role.in_(_values(ORG_ADMIN_ROLES)),
        )
        .exists()
    )


def has_project_role(actor_id, project_id, roles):
    """Active project membership in `roles`, under an active valid org membership."""
    values = _values(roles)
    if not values:
        return sa.false()
    up = UserProject.__table__.alias()
    p = Project.__table__.alias()
    uo = UserOrg.__table__.alias()
    return (
        sa.select(up.c.user_id)
        .where(
            up.c.user_id == actor_id,
            up.c.project_id == project_id,
            up.c.is_active.is_(True),
            up.c.role.in_(values),
            p.c.id == up.c.project_id,
            uo.c.user_id == up.c.user_id,
            uo.c.org_id == p.c.org_id,
            uo.c.is_active.is_(True),
            uo.c.role.in_(_values(ALL_ORG_ROLES)),
        )
        .exists()
    )


def resource_maps_to(actor_id, resource_id):
    r = Resource.__table__.alias()
    return sa.select(r.c.id).where(r.c.id == resource_id, r.c.user_id == actor_id).exists()


# ---------------------------------------------------------------------------
# Composite rules
# ---------------------------------------------------------------------------

def org_cell(actor_id, entity, action, org_id):
    if not grid.is_cell(entity, action):
        return sa.false()
    return sa.or_(
        is_system_admin(actor_id),
        has_org_role(actor_id, org_id, grid.roles_with(entity, action)),
    )


def project_cell(actor_id, entity, action, project_id):
    if not grid.is_cell(entity, action):
        return sa.false()
    return sa.or_(
        is_system_admin(actor_id),
        is_project_org_admin(actor_id, project_id),
        has_project_role(actor_id, project_id, grid.roles_with(entity, action)),
    )


def cell(actor_id, entity, action, *, org_id=None, project_id=None):
    """Grid cell as SQL, scoped by org or project depending on the entity."""
    parsed = grid.parse_entity(entity)
    if parsed is None:
        return sa.false()
    if grid.is_project_scoped(parsed):
        return project_cell(actor_id, parsed, action, project_id)
    return org_cell(actor_id, parsed, action, org_id)


def can_access_project(actor_id, project_id):
    return sa.or_(
        is_system_admin(actor_id),
        is_project_org_admin(actor_id, project_id),
        has_project_role(actor_id, project_id, ALL_PROJECT_ROLES),
    )


def is_elevated(actor_id, project_id):
    return sa.or_(
        is_system_admin(actor_id),
        is_project_org_admin(actor_id, project_id),
        has_project_role(actor_id, project_id, ADMIN_TIER_ROLES),
    )


def is_owner_tier(actor_id, org_id):
    return sa.or_(
        is_system_admin(actor_id),
        has_org_role(actor_id, org_id, {OrgRole.ORG_OWNER}),
    )
