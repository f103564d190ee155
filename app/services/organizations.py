"""
Organization service: business logic for org CRUD.

Every mutation resolves the actor's context, checks the evaluator, then
writes through the Gatekeeper, which re-checks the same rule in SQL.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser, resolve_context
from app.core.enforcement import BYPASS_OPTION, Gatekeeper
from app.models.organization import Organization
from app.models.user_org import UserOrg
from app.services.audit import record_change, snapshot
from tracker_shared.authz.capabilities import evaluator
from tracker_shared.authz.errors import Forbidden
from tracker_shared.schemas.common import Action, OrgEntity, OrgRole
from tracker_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgSettings,
    OrgUpdateRequest,
)

log = structlog.get_logger()


def _deep_merge(base: dict, patch: dict) -> dict:
    """JSON Merge Patch style deep merge (null removes a key)."""
    result = base.copy()
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


async def list_user_orgs(
    user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """List the active orgs visible to the user, with their role where they hold one."""
    result = await session.execute(
        select(Organization, UserOrg.role)
        .outerjoin(
            UserOrg,
            (UserOrg.org_id == Organization.id)
            & (UserOrg.user_id == user_id)
            & UserOrg.is_active.is_(True),
        )
        .where(Organization.is_active.is_(True))
        .order_by(Organization.name)
    )
    return [
        {"id": org.id, "name": org.name, "slug": org.slug, "role": role}
        for org, role in result.all()
    ]


async def create_org(
    req: OrgCreateRequest,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator its owner."""
    if not evaluator.can_create_organization(auth.principal):
        raise Forbidden("Your account cannot create organizations")

    # Slugs are global, including orgs the caller cannot see
    existing = await session.execute(
        select(Organization.id)
        .where(Organization.slug == req.slug)
        .execution_options(**{BYPASS_OPTION: True})
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Org slug already taken")

    org = Organization(
        name=req.name,
        slug=req.slug,
        settings=OrgSettings().model_dump(),
    )
    org = (await Gatekeeper(session).insert(org)).unwrap()

    # Owner bootstrap: nobody can pass org_members.invite on a brand new org
    has_default = await session.execute(
        select(UserOrg.org_id)
        .where(UserOrg.user_id == auth.user_id, UserOrg.is_default.is_(True))
        .execution_options(**{BYPASS_OPTION: True})
    )
    membership = UserOrg(
        user_id=auth.user_id,
        org_id=org.id,
        role=OrgRole.ORG_OWNER.value,
        is_default=has_default.first() is None,
    )
    session.add(membership)
    await session.flush()
    await record_change(
        session,
        table_name=UserOrg.__tablename__,
        record_id=f"{membership.user_id}:{membership.org_id}",
        org_id=org.id,
        actor_id=auth.user_id,
        action="insert",
        after=snapshot(membership),
    )

    log.info("org.created", org_id=str(org.id), slug=req.slug, creator=str(auth.user_id))
    return org


async def update_org(
    org: Organization,
    req: OrgUpdateRequest,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> Organization:
    """Update org name and/or settings (deep merge)."""
    context = await resolve_context(session, auth, org.id)
    changes: dict = {}

    if req.name is not None:
        if not evaluator.has(context, OrgEntity.ORGANIZATION, Action.EDIT):
            raise Forbidden()
        changes["name"] = req.name

    if req.settings is not None:
        if not evaluator.has(context, OrgEntity.ORG_SETTINGS, Action.EDIT):
            raise Forbidden()
        merged = _deep_merge(org.settings, req.settings)
        try:
            OrgSettings.model_validate(merged)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        changes["settings"] = merged

    if not changes:
        return org

    org = (await Gatekeeper(session).update(org, changes)).unwrap()
    log.info("org.updated", org_id=str(org.id), slug=org.slug, fields=sorted(changes))
    return org


async def deactivate_org(
    org: Organization,
    auth: AuthenticatedUser,
    session: AsyncSession,
) -> Organization:
    """Soft-delete an org. Owner (or system admin) only."""
    context = await resolve_context(session, auth, org.id)
    if not evaluator.has(context, OrgEntity.ORGANIZATION, Action.DELETE):
        raise Forbidden()

    org = (await Gatekeeper(session).deactivate(org)).unwrap()
    log.info("org.deactivated", org_id=str(org.id), slug=org.slug)
    return org
