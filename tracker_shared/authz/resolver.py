"""
ContextResolver: turns a principal plus an org/project selection into an
EffectiveContext.

Precedence:

1. platform system_admin -> SystemAdminBypass, no store reads
2. active org membership in the requested org (else no org role)
3. org_owner / org_admin -> OrgAdminOverride for every project of that org
4. otherwise the active project membership, which only counts under an
   active, valid org membership in the project's org
5. nothing usable -> Unaffiliated

Role values outside the enumerated sets are logged at error level and
treated as absent. Resolution never raises for them.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Optional, Protocol, Sequence, TypeVar

import structlog

from tracker_shared.authz.errors import InvalidRole
from tracker_shared.schemas.common import ORG_ADMIN_ROLES, OrgRole, PlatformRole, ProjectRole
from tracker_shared.schemas.context import (
    EffectiveContext,
    OrdinaryContext,
    OrgAdminOverride,
    SystemAdminBypass,
    Unaffiliated,
)
from tracker_shared.schemas.memberships import OrgMembership, Principal, ProjectMembership

log = structlog.get_logger()

RoleT = TypeVar("RoleT", bound=Enum)


class MembershipStore(Protocol):
    """Read side of membership storage. Never cached by callers."""

    async def list_org_memberships(self, principal_id: uuid.UUID) -> Sequence[OrgMembership]:
        ...

    async def list_project_memberships(self, principal_id: uuid.UUID) -> Sequence[ProjectMembership]:
        ...

    async def get_project_organization_id(self, project_id: uuid.UUID) -> Optional[uuid.UUID]:
        ...


# ---------------------------------------------------------------------------
# Role parsing
# ---------------------------------------------------------------------------

def parse_role(axis: str, value, enum_cls: type[RoleT]) -> RoleT:
    """Parse a stored role value. Raises InvalidRole for anything off-enum."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidRole(axis, value) from None


def _role_or_none(axis: str, value, enum_cls: type[RoleT], **log_fields) -> Optional[RoleT]:
    try:
        return parse_role(axis, value, enum_cls)
    except InvalidRole as exc:
        log.error("authz.invalid_role", axis=axis, value=repr(exc.value), **log_fields)
        return None


def platform_role_of(principal: Principal) -> PlatformRole:
    """The principal's platform role; off-enum values degrade to guest."""
    role = _role_or_none("platform", principal.platform_role, PlatformRole, user_id=str(principal.id))
    return role or PlatformRole.GUEST


# ---------------------------------------------------------------------------
# Pure resolution
# ---------------------------------------------------------------------------

def resolve_context(
    principal: Principal,
    organization_id: Optional[uuid.UUID],
    project_id: Optional[uuid.UUID],
    org_memberships: Sequence[OrgMembership],
    project_memberships: Sequence[ProjectMembership],
    project_organization_id: Optional[uuid.UUID] = None,
) -> EffectiveContext:
    """Resolve an EffectiveContext from an already-loaded membership snapshot."""
    platform_role = platform_role_of(principal)
    if platform_role == PlatformRole.SYSTEM_ADMIN:
        return SystemAdminBypass()

    org_role: Optional[OrgRole] = None
    if organization_id is not None:
        membership = next(
            (m for m in org_memberships if m.org_id == organization_id and m.is_active),
            None,
        )
        if membership is not None:
            org_role = _role_or_none(
                "org", membership.role, OrgRole,
                user_id=str(principal.id), org_id=str(organization_id),
            )

    if org_role is None:
        # No active, valid org membership: project rows never count on their own.
        return Unaffiliated(platform_role=platform_role)

    project_in_org = project_id is not None and project_organization_id == organization_id
    project_role: Optional[ProjectRole] = None
    if project_in_org:
        membership = next(
            (
                m for m in project_memberships
                if m.project_id == project_id and m.is_active and m.org_id == organization_id
            ),
            None,
        )
        if membership is not None:
            project_role = _role_or_none(
                "project", membership.role, ProjectRole,
                user_id=str(principal.id), project_id=str(project_id),
            )

    if org_role in ORG_ADMIN_ROLES and (project_id is None or project_in_org):
        return OrgAdminOverride(platform_role=platform_role, org_role=org_role, project_role=project_role)

    return OrdinaryContext(platform_role=platform_role, org_role=org_role, project_role=project_role)


class ContextResolver:
    """Async resolver reading the MembershipStore at call time."""

    def __init__(self, store: MembershipStore):
        self.store = store

    async def resolve(
        self,
        principal: Principal,
        organization_id: Optional[uuid.UUID],
        project_id: Optional[uuid.UUID] = None,
    ) -> EffectiveContext:
        if platform_role_of(principal) == PlatformRole.SYSTEM_ADMIN:
            return SystemAdminBypass()

        org_memberships = await self.store.list_org_memberships(principal.id)
        project_memberships: Sequence[ProjectMembership] = []
        project_organization_id = None
        if project_id is not None:
            project_memberships = await self.store.list_project_memberships(principal.id)
            project_organization_id = await self.store.get_project_organization_id(project_id)

        return resolve_context(
            principal,
            organization_id,
            project_id,
            org_memberships,
            project_memberships,
            project_organization_id,
        )
