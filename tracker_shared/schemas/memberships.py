"""
Identity and membership records consumed by the authorization core.

Role fields are raw strings on purpose: they arrive from storage and are only
parsed by the resolver, which logs values outside the enumerated sets and
treats them as absent.
"""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Principal(BaseModel):
    """The authenticated requester as supplied by the session provider."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    platform_role: Optional[str] = "user"


class OrgMembership(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: uuid.UUID
    org_id: uuid.UUID
    role: Optional[str]
    is_active: bool = True
    is_default: bool = False


class ProjectMembership(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: uuid.UUID
    project_id: uuid.UUID
    org_id: uuid.UUID  # the project's organization
    role: Optional[str]
    is_active: bool = True
    is_default: bool = False


class ActiveSelection(BaseModel):
    """The organization/project a session is currently working in."""

    org_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None


def select_active(
    org_memberships: list[OrgMembership],
    project_memberships: list[ProjectMembership],
    requested_org_id: uuid.UUID | None = None,
    requested_project_id: uuid.UUID | None = None,
) -> ActiveSelection:
    """Pick the working organization and project for a session.

    Order of preference on each axis: the requested id (if it is an active
    membership), then the default membership, then the first active one.
    Projects are only picked from the selected organization.
    """
    orgs = [m for m in org_memberships if m.is_active]
    org_id = _pick(
        [m.org_id for m in orgs],
        [m.org_id for m in orgs if m.is_default],
        requested_org_id,
    )
    if org_id is None:
        return ActiveSelection()

    projects = [m for m in project_memberships if m.is_active and m.org_id == org_id]
    project_id = _pick(
        [m.project_id for m in projects],
        [m.project_id for m in projects if m.is_default],
        requested_project_id,
    )
    return ActiveSelection(org_id=org_id, project_id=project_id)


def _pick(candidates: list, defaults: list, requested):
    if requested is not None and requested in candidates:
        return requested
    if defaults:
        return defaults[0]
    return candidates[0] if candidates else None
