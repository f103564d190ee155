"""
Authentication and request context for Project Tracker.

Supports:
- JWT sessions (Bearer header or session cookie); authentication itself is
  delegated to the identity provider, create_jwt exists for tooling and tests
- Binding the authenticated principal to the database session for enforcement
- Org resolution by slug (through the read filter) and context resolution
- The signed View As cookie
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.enforcement import BYPASS_OPTION
from app.models.organization import Organization
from app.models.project import Project
from app.models.user import User
from app.services.membership_store import SqlMembershipStore
from tracker_shared.authz.errors import NotFound, Unauthorized
from tracker_shared.authz.resolver import ContextResolver
from tracker_shared.schemas.context import EffectiveContext
from tracker_shared.schemas.memberships import Principal

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

VIEW_AS_PURPOSE = "view_as"


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# View As cookie
# ---------------------------------------------------------------------------

def encode_view_as(user_id: uuid.UUID, org_id: uuid.UUID, role: str) -> str:
    """Sign a View As selection, bound to one user and one org."""
    payload = {
        "sub": str(user_id),
        "org": str(org_id),
        "role": role,
        "purpose": VIEW_AS_PURPOSE,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_view_as(token: Optional[str], user_id: uuid.UUID, org_id: uuid.UUID) -> Optional[str]:
    """The View As role from a cookie, or None if absent, tampered or for another user/org."""
    if not token:
        return None
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        log.info("view_as.cookie_rejected", user_id=str(user_id))
        return None
    if (
        payload.get("purpose") != VIEW_AS_PURPOSE
        or payload.get("sub") != str(user_id)
        or payload.get("org") != str(org_id)
    ):
        return None
    return payload.get("role")


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for the authenticated user and their principal view."""

    def __init__(self, user: User):
        self.user = user
        self.user_id = user.id
        self.principal = Principal(id=user.id, platform_role=user.platform_role)


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(settings.session_cookie_name)


async def get_authenticated_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Main authentication dependency. Binds the actor to the database session."""
    token = _extract_token(request, authorization)
    if not token:
        raise Unauthorized()

    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise Unauthorized("Invalid or expired session")
    # Purpose-bound tokens (View As) are not sessions
    if "purpose" in payload:
        raise Unauthorized("Invalid or expired session")

    result = await session.execute(
        select(User).where(User.id == user_id).execution_options(**{BYPASS_OPTION: True})
    )
    user = result.scalar_one_or_none()
    if not user:
        raise Unauthorized("User not found")

    session.info["actor_id"] = user.id
    request.state.auth = AuthenticatedUser(user)
    return request.state.auth


# ---------------------------------------------------------------------------
# Org / project / context resolution
# ---------------------------------------------------------------------------

async def get_org(
    orgSlug: str,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
) -> Organization:
    """Resolve an org by slug through the read filter; invisible orgs are 404."""
    result = await session.execute(
        select(Organization).where(Organization.slug == orgSlug, Organization.is_active.is_(True))
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


async def get_project_or_404(session: AsyncSession, org: Organization, project_id: uuid.UUID) -> Project:
    result = await session.execute(
        select(Project).where(Project.id == project_id, Project.org_id == org.id)
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFound("Project not found")
    return project


async def resolve_context(
    session: AsyncSession,
    auth: AuthenticatedUser,
    org_id: Optional[uuid.UUID],
    project_id: Optional[uuid.UUID] = None,
) -> EffectiveContext:
    """Fresh resolution against the current membership rows."""
    resolver = ContextResolver(SqlMembershipStore(session))
    return await resolver.resolve(auth.principal, org_id, project_id)
