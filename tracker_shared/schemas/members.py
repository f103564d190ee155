"""Membership management schemas (org and project teams)."""

from __future__ import annotations

import uuid
from typing import List, Optional

from pydantic import BaseModel, EmailStr, model_validator

from .common import OrgRole, ProjectRole
from .memberships import ActiveSelection


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgMemberInvite(BaseModel):
    """Invite an existing user into the org, by id or email."""
    user_id: Optional[uuid.UUID] = None
    email: Optional[EmailStr] = None
    role: OrgRole = OrgRole.ORG_MEMBER

    @model_validator(mode="after")
    def _one_identifier(self):
        if (self.user_id is None) == (self.email is None):
            raise ValueError("Provide exactly one of user_id or email")
        return self


class OrgMemberUpdate(BaseModel):
    role: Optional[OrgRole] = None
    is_default: Optional[bool] = None


class ProjectMemberAdd(BaseModel):
    user_id: uuid.UUID
    role: ProjectRole = ProjectRole.VIEWER


class ProjectMemberUpdate(BaseModel):
    role: Optional[ProjectRole] = None
    is_default: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgMemberResponse(BaseModel):
    user_id: uuid.UUID
    org_id: uuid.UUID
    role: str
    is_active: bool
    is_default: bool
    email: Optional[str] = None
    display_name: Optional[str] = None

    model_config = {"from_attributes": True}


class OrgMemberListResponse(BaseModel):
    data: List[OrgMemberResponse]


class ProjectMemberResponse(BaseModel):
    user_id: uuid.UUID
    project_id: uuid.UUID
    role: str
    is_active: bool
    is_default: bool

    model_config = {"from_attributes": True}


class ProjectMemberListResponse(BaseModel):
    data: List[ProjectMemberResponse]


class MembershipSummary(BaseModel):
    id: uuid.UUID  # org or project id
    role: Optional[str]
    is_default: bool
    name: Optional[str] = None


class MeResponse(BaseModel):
    id: uuid.UUID
    email: Optional[str] = None
    display_name: Optional[str] = None
    platform_role: Optional[str]
    organizations: List[MembershipSummary]
    projects: List[MembershipSummary]
    active: ActiveSelection
