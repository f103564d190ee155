"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgSlug}.
"""

from fastapi import APIRouter
from . import context, me, members, projects, work
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

router.include_router(me.router)

# Organization routes (non-org-scoped: list, create)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, update, delete)
router.include_router(orgs_scoped_router, prefix="/orgs/{orgSlug}", tags=["Organizations"])

router.include_router(context.router, prefix="/orgs/{orgSlug}/context", tags=["Context"])
router.include_router(members.router, prefix="/orgs/{orgSlug}/members", tags=["Members"])
router.include_router(projects.router, prefix="/orgs/{orgSlug}/projects", tags=["Projects"])

for path, work_router in work.routers.items():
    router.include_router(
        work_router,
        prefix=f"/orgs/{{orgSlug}}/projects/{{project_id}}/{path}",
        tags=[path.capitalize()],
    )


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/me",
            "/orgs",
            "/orgs/{orgSlug}/context",
            "/orgs/{orgSlug}/members",
            "/orgs/{orgSlug}/projects",
        ]
        + [f"/orgs/{{orgSlug}}/projects/{{project_id}}/{path}" for path in work.routers],
    }
