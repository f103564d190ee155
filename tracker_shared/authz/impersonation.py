"""
"View As" overlay: lets an admin preview the UI as a lower role.

The overlay only swaps the context used for rendering. It is never consulted
by the enforcement layer, which always acts as the authenticated principal.
"""

from __future__ import annotations

from typing import Optional, Union

from tracker_shared.authz.errors import Forbidden
from tracker_shared.schemas.common import ORG_ADMIN_ROLES, OrgRole, PlatformRole, ProjectRole
from tracker_shared.schemas.context import (
    EffectiveContext,
    OrdinaryContext,
    OrgAdminOverride,
    SystemAdminBypass,
)

ViewAsRole = Union[OrgRole, ProjectRole]


def parse_view_as_role(value) -> ViewAsRole:
    """Org roles first, then project roles. Raises ValueError when neither."""
    for enum_cls in (OrgRole, ProjectRole):
        try:
            return enum_cls(value)
        except ValueError:
            continue
    raise ValueError(f"Unknown role: {value!r}")


def simulate(role: ViewAsRole) -> EffectiveContext:
    if role in ORG_ADMIN_ROLES:
        return OrgAdminOverride(platform_role=PlatformRole.USER, org_role=role)
    if role == OrgRole.ORG_MEMBER:
        return OrdinaryContext(platform_role=PlatformRole.USER, org_role=OrgRole.ORG_MEMBER)
    return OrdinaryContext(platform_role=PlatformRole.USER, org_role=OrgRole.ORG_MEMBER, project_role=role)


class ViewAsOverlay:
    def __init__(self, real: EffectiveContext):
        self.real = real
        self.role: Optional[ViewAsRole] = None
        self._simulated: Optional[EffectiveContext] = None

    @property
    def can_impersonate(self) -> bool:
        return isinstance(self.real, (SystemAdminBypass, OrgAdminOverride))

    @property
    def is_impersonating(self) -> bool:
        return self._simulated is not None

    @property
    def effective(self) -> EffectiveContext:
        return self._simulated if self._simulated is not None else self.real

    def set_view_as(self, role) -> EffectiveContext:
        if not self.can_impersonate:
            raise Forbidden("Only administrators can use View As")
        self.role = parse_view_as_role(role)
        self._simulated = simulate(self.role)
        return self._simulated

    def clear(self) -> EffectiveContext:
        self.role = None
        self._simulated = None
        return self.real
