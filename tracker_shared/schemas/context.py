"""
EffectiveContext: the resolved role triple for one request.

Modelled as a tagged union so the four resolution outcomes are exhaustive:

- SystemAdminBypass: platform admin, every check passes
- OrgAdminOverride: org owner/admin, admin-equivalent in every project of the org
- OrdinaryContext: org member, optionally with a project role
- Unaffiliated: no usable membership, every check denies

Every variant exposes the same flat view (platform_role, org_role,
project_role, is_org_admin_override) for callers that do not branch on kind.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .common import OrgRole, PlatformRole, ProjectRole


class _ContextBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform_role: PlatformRole = PlatformRole.USER

    @property
    def is_org_admin_override(self) -> bool:
        return False

    @property
    def is_system_admin(self) -> bool:
        return False


class SystemAdminBypass(_ContextBase):
    kind: Literal["system_admin_bypass"] = "system_admin_bypass"
    platform_role: PlatformRole = PlatformRole.SYSTEM_ADMIN

    @property
    def org_role(self) -> Optional[OrgRole]:
        return None

    @property
    def project_role(self) -> Optional[ProjectRole]:
        return None

    @property
    def is_system_admin(self) -> bool:
        return True


class OrgAdminOverride(_ContextBase):
    kind: Literal["org_admin_override"] = "org_admin_override"
    org_role: OrgRole
    project_role: Optional[ProjectRole] = None

    @property
    def is_org_admin_override(self) -> bool:
        return True


class OrdinaryContext(_ContextBase):
    kind: Literal["ordinary"] = "ordinary"
    org_role: OrgRole
    project_role: Optional[ProjectRole] = None


class Unaffiliated(_ContextBase):
    kind: Literal["unaffiliated"] = "unaffiliated"

    @property
    def org_role(self) -> Optional[OrgRole]:
        return None

    @property
    def project_role(self) -> Optional[ProjectRole]:
        return None


EffectiveContext = Annotated[
    Union[SystemAdminBypass, OrgAdminOverride, OrdinaryContext, Unaffiliated],
    Field(discriminator="kind"),
]


class ContextView(BaseModel):
    """Flat, serializable view of an EffectiveContext."""

    kind: str
    platform_role: PlatformRole
    org_role: Optional[OrgRole] = None
    project_role: Optional[ProjectRole] = None
    is_org_admin_override: bool = False


def flatten(context: EffectiveContext) -> ContextView:
    return ContextView(
        kind=context.kind,
        platform_role=context.platform_role,
        org_role=context.org_role,
        project_role=context.project_role,
        is_org_admin_override=context.is_org_admin_override,
    )


class ViewAsRequest(BaseModel):
    role: str = Field(min_length=1, description="An org role or a project role to preview")


class ContextResponse(BaseModel):
    """Real and effective context for the current org/project selection."""

    org_id: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    real: ContextView
    effective: ContextView
    is_impersonating: bool = False
    view_as: Optional[str] = None
    capabilities: dict[str, bool]
