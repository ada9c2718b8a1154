"""
API v1 Router

Stage and connection endpoints are nested under /projects/{project_id}.
"""

from fastapi import APIRouter
from . import connections, project_stages, projects, stages

router = APIRouter()

router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(
    project_stages.router, prefix="/projects/{project_id}/stages", tags=["Project Stages"]
)
router.include_router(
    connections.router, prefix="/projects/{project_id}/connections", tags=["Connections"]
)
router.include_router(stages.router, prefix="/stages", tags=["Stages"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/projects",
            "/projects/years",
            "/projects/{project_id}/stages",
            "/projects/{project_id}/connections",
            "/projects/{project_id}/shares",
            "/stages",
        ],
    }
