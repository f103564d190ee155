"""
Work entity endpoints, one router per entity kind.

/api/v1/orgs/{orgSlug}/projects/{project_id}/{resources|timesheets|expenses|milestones|deliverables|variations}

GET    ""                    - List (filtered by visibility)
POST   ""                    - Create
GET    /{item_id}            - Get
PATCH  /{item_id}            - Partial update
DELETE /{item_id}            - Delete
POST   /{item_id}/transition - submit / approve / reject (all but resources)
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.projects import get_project
from app.core.auth import AuthenticatedUser, get_authenticated_user, get_org
from app.core.database import get_session
from app.models.organization import Organization
from app.models.project import Project
from app.services import work as work_service
from app.services.work import WORK_KINDS, WorkKind
from tracker_shared.schemas.work import TransitionRequest


def build_router(kind: WorkKind) -> APIRouter:
    """CRUD router for one work entity; the body schemas come from the kind."""
    router = APIRouter()
    CreateSchema = kind.create_schema
    UpdateSchema = kind.update_schema
    ReadSchema = kind.read_schema

    @router.get("", response_model=List[ReadSchema])
    async def list_items(
        project: Project = Depends(get_project),
        session: AsyncSession = Depends(get_session),
    ):
        return await work_service.list_rows(kind, project, session)

    @router.post("", response_model=ReadSchema, status_code=201)
    async def create_item(
        body: CreateSchema,
        org: Organization = Depends(get_org),
        project: Project = Depends(get_project),
        auth: AuthenticatedUser = Depends(get_authenticated_user),
        session: AsyncSession = Depends(get_session),
    ):
        return await work_service.create_row(kind, org, project, body.model_dump(), auth, session)

    @router.get("/{item_id}", response_model=ReadSchema)
    async def get_item(
        item_id: uuid.UUID,
        project: Project = Depends(get_project),
        session: AsyncSession = Depends(get_session),
    ):
        return await work_service.get_row(kind, project, item_id, session)

    @router.patch("/{item_id}", response_model=ReadSchema)
    async def update_item(
        item_id: uuid.UUID,
        body: UpdateSchema,
        org: Organization = Depends(get_org),
        project: Project = Depends(get_project),
        auth: AuthenticatedUser = Depends(get_authenticated_user),
        session: AsyncSession = Depends(get_session),
    ):
        changes = body.model_dump(exclude_unset=True)
        return await work_service.update_row(kind, org, project, item_id, changes, auth, session)

    @router.delete("/{item_id}", status_code=204)
    async def delete_item(
        item_id: uuid.UUID,
        org: Organization = Depends(get_org),
        project: Project = Depends(get_project),
        auth: AuthenticatedUser = Depends(get_authenticated_user),
        session: AsyncSession = Depends(get_session),
    ):
        await work_service.delete_row(kind, org, project, item_id, auth, session)

    if kind.has_workflow:

        @router.post("/{item_id}/transition", response_model=ReadSchema)
        async def transition_item(
            item_id: uuid.UUID,
            body: TransitionRequest,
            org: Organization = Depends(get_org),
            project: Project = Depends(get_project),
            auth: AuthenticatedUser = Depends(get_authenticated_user),
            session: AsyncSession = Depends(get_session),
        ):
            """Submit, approve or reject. Approved records become read-only."""
            return await work_service.transition_row(
                kind, org, project, item_id, body.transition, auth, session, comment=body.comment
            )

    return router


routers = {path: build_router(kind) for path, kind in WORK_KINDS.items()}
