"""
Membership service: invitations, role changes and removals for org and
project teams.

Resolve, then act: the actor's context comes from the pre-mutation snapshot,
the evaluator gates the request, and the Gatekeeper re-checks in SQL before
writing. Memberships are never hard-deleted.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from app.core.auth import AuthenticatedUser, resolve_context
from app.core.enforcement import BYPASS_OPTION, Gatekeeper
from app.models.organization import Organization
from app.models.project import Project
from app.models.user import User
from app.models.user_org import UserOrg
from app.models.user_project import UserProject
from tracker_shared.authz.capabilities import evaluator
from tracker_shared.authz.errors import Forbidden, NotFound
from tracker_shared.schemas.common import Action, OrgEntity, OrgRole, ProjectEntity
from tracker_shared.schemas.members import (
    OrgMemberInvite,
    OrgMemberUpdate,
    ProjectMemberAdd,
    ProjectMemberUpdate,
)

log = structlog.get_logger()

OWNER = OrgRole.ORG_OWNER.value


def _member_dict(uo: UserOrg, user: Optional[User]) -> dict:
    return {
        "user_id": uo.user_id,
        "org_id": uo.org_id,
        "role": uo.role,
        "is_active": uo.is_active,
        "is_default": uo.is_default,
        "email": user.email if user else None,
        "display_name": user.display_name if user else None,
    }


async def _find_user(session: AsyncSession, user_id=None, email=None) -> User:
    stmt = select(User).execution_options(**{BYPASS_OPTION: True})
    if user_id is not None:
        stmt = stmt.where(User.id == user_id)
    else:
        stmt = stmt.where(User.email == email)
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


async def _active_owner_count(session: AsyncSession, org_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(UserOrg)
        .where(UserOrg.org_id == org_id, UserOrg.role == OWNER, UserOrg.is_active.is_(True))
        .execution_options(**{BYPASS_OPTION: True})
    )
    return result.scalar_one()


async def _ensure_not_last_owner(session: AsyncSession, uo: UserOrg) -> None:
    if uo.role == OWNER and uo.is_active and await _active_owner_count(session, uo.org_id) <= 1:
        raise HTTPException(status_code=409, detail="An organization must keep at least one owner")


# ---------------------------------------------------------------------------
# Org members
# ---------------------------------------------------------------------------

async def list_org_members(org: Organization, session: AsyncSession) -> list[dict]:
    """Members visible to the caller; plain members only see their own row."""
    result = await session.execute(
        select(UserOrg, User)
        .join(User, User.id == UserOrg.user_id)
        .where(UserOrg.org_id == org.id)
        .order_by(UserOrg.joined_at)
    )
    return [_member_dict(uo, user) for uo, user in result.all()]


async def get_org_member(org: Organization, user_id: uuid.UUID, session: AsyncSession) -> UserOrg:
    result = await session.execute(
        select(UserOrg).where(UserOrg.org_id == org.id, UserOrg.user_id == user_id)
    )
    uo = result.scalar_one_or_none()
    if not uo:
        raise NotFound("Member not found")
    return uo


async def invite_org_member(
    org: Organization,
    req: OrgMemberInvite,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> dict:
    """Add a user to the org, or reactivate their previous membership."""
    context = await resolve_context(session, auth, org.id)
    if not evaluator.has(context, OrgEntity.ORG_MEMBERS, Action.INVITE):
        raise Forbidden()
    if req.role == OrgRole.ORG_OWNER and not evaluator.is_owner_tier(context):
        raise Forbidden("Only an owner can grant the owner role")

    user = await _find_user(session, user_id=req.user_id, email=req.email)
    gate = Gatekeeper(session)

    result = await session.execute(
        select(UserOrg)
        .where(UserOrg.org_id == org.id, UserOrg.user_id == user.id)
        .execution_options(**{BYPASS_OPTION: True})
    )
    existing = result.scalar_one_or_none()
    if existing and existing.is_active:
        raise HTTPException(status_code=409, detail="User is already a member of this org")

    if existing:
        uo = (await gate.update(existing, {"is_active": True, "role": req.role.value})).unwrap()
        log.info("member.reactivated", user_id=str(user.id), org_id=str(org.id), role=req.role.value)
    else:
        uo = UserOrg(user_id=user.id, org_id=org.id, role=req.role.value)
        uo = (await gate.insert(uo)).unwrap()
        log.info("member.invited", user_id=str(user.id), org_id=str(org.id), role=req.role.value)
    return _member_dict(uo, user)


async def update_org_member(
    org: Organization,
    user_id: uuid.UUID,
    req: OrgMemberUpdate,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> dict:
    """Change a member's role (or default flag)."""
    context = await resolve_context(session, auth, org.id)
    uo = await get_org_member(org, user_id, session)
    if not evaluator.has(context, OrgEntity.ORG_MEMBERS, Action.MANAGE):
        raise Forbidden()

    changes = req.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if "role" in changes:
        new_role = changes["role"]
        if OWNER in (uo.role, new_role) and not evaluator.is_owner_tier(context):
            raise Forbidden("Only an owner can grant or revoke the owner role")
        if new_role != OWNER:
            await _ensure_not_last_owner(session, uo)

    old_role = uo.role
    uo = (await Gatekeeper(session).update(uo, changes)).unwrap()
    if old_role != uo.role:
        log.info(
            "member.role_changed",
            user_id=str(user_id),
            org_id=str(org.id),
            old_role=old_role,
            new_role=uo.role,
        )
    user = await _find_user(session, user_id=user_id)
    return _member_dict(uo, user)


async def remove_org_member(
    org: Organization,
    user_id: uuid.UUID,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> None:
    """Soft-deactivate a membership. Access is revoked on the next request."""
    context = await resolve_context(session, auth, org.id)
    uo = await get_org_member(org, user_id, session)
    if not evaluator.has(context, OrgEntity.ORG_MEMBERS, Action.MANAGE):
        raise Forbidden()
    if uo.role == OWNER and not evaluator.is_owner_tier(context):
        raise Forbidden("Only an owner can remove an owner")
    await _ensure_not_last_owner(session, uo)

    (await Gatekeeper(session).deactivate(uo)).unwrap()
    log.info("member.removed", user_id=str(user_id), org_id=str(org.id))


# ---------------------------------------------------------------------------
# Project members
# ---------------------------------------------------------------------------

async def list_project_members(project: Project, session: AsyncSession) -> list[UserProject]:
    result = await session.execute(
        select(UserProject)
        .where(UserProject.project_id == project.id)
        .order_by(UserProject.assigned_at)
    )
    return list(result.scalars().all())


async def get_project_member(project: Project, user_id: uuid.UUID, session: AsyncSession) -> UserProject:
    result = await session.execute(
        select(UserProject).where(UserProject.project_id == project.id, UserProject.user_id == user_id)
    )
    up = result.scalar_one_or_none()
    if not up:
        raise NotFound("User not assigned to project")
    return up


async def _require_team_manager(
    org: Organization, project: Project, auth: AuthenticatedUser, session: AsyncSession
) -> None:
    context = await resolve_context(session, auth, org.id, project.id)
    if not evaluator.has(context, ProjectEntity.PROJECT_MEMBERS, Action.MANAGE):
        raise Forbidden()


async def add_project_member(
    org: Organization,
    project: Project,
    req: ProjectMemberAdd,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> UserProject:
    await _require_team_manager(org, project, auth, session)

    org_membership = await session.execute(
        select(UserOrg.role)
        .where(UserOrg.org_id == org.id, UserOrg.user_id == req.user_id, UserOrg.is_active.is_(True))
        .execution_options(**{BYPASS_OPTION: True})
    )
    if org_membership.scalar_one_or_none() is None:
        raise HTTPException(status_code=422, detail="User is not an active member of this organization")

    result = await session.execute(
        select(UserProject)
        .where(UserProject.project_id == project.id, UserProject.user_id == req.user_id)
        .execution_options(**{BYPASS_OPTION: True})
    )
    existing = result.scalar_one_or_none()
    if existing and existing.is_active:
        raise HTTPException(status_code=409, detail="User is already assigned to this project")

    gate = Gatekeeper(session)
    if existing:
        up = (await gate.update(existing, {"is_active": True, "role": req.role.value})).unwrap()
    else:
        up = (await gate.insert(UserProject(user_id=req.user_id, project_id=project.id, role=req.role.value))).unwrap()
    log.info("project_member.added", user_id=str(req.user_id), project_id=str(project.id), role=req.role.value)
    return up


async def update_project_member(
    org: Organization,
    project: Project,
    user_id: uuid.UUID,
    req: ProjectMemberUpdate,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> UserProject:
    await _require_team_manager(org, project, auth, session)
    up = await get_project_member(project, user_id, session)

    changes = req.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    old_role = up.role
    up = (await Gatekeeper(session).update(up, changes)).unwrap()
    if old_role != up.role:
        log.info(
            "project_member.role_changed",
            user_id=str(user_id),
            project_id=str(project.id),
            old_role=old_role,
            new_role=up.role,
        )
    return up


async def remove_project_member(
    org: Organization,
    project: Project,
    user_id: uuid.UUID,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> None:
    await _require_team_manager(org, project, auth, session)
    up = await get_project_member(project, user_id, session)
    (await Gatekeeper(session).deactivate(up)).unwrap()
    log.info("project_member.removed", user_id=str(user_id), project_id=str(project.id))
