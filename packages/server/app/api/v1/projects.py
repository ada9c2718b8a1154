"""
Project endpoints: registry, completion lock, sharing and activity.

Status is never writable here: it is derived from the project's stages,
except for the one-way manual completion via POST /{project_id}/complete.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.database import get_session
from app.core.events import broadcast_event, list_project_events
from app.services import projects as project_service
from app.services import stages as stage_service
from stagetrack_shared.schemas.projects import (
    ProjectCreate,
    ProjectRead,
    ProjectShareAdd,
    ProjectShareRead,
    ProjectUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[ProjectRead])
async def list_projects(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """List projects visible to the caller, optionally by creation year and month."""
    projects = await project_service.list_projects(session, auth, year=year, month=month)
    return await project_service.enrich_projects(session, projects)


@router.get("/years", response_model=List[int])
async def list_project_years(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Distinct creation years of the caller's visible projects, newest first."""
    return await project_service.list_project_years(session, auth)


@router.post("/", response_model=ProjectRead, status_code=201)
async def create_project(
    project_in: ProjectCreate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.create_project(session, project_in, auth)

    await broadcast_event(
        session=session,
        event_type="project.created",
        payload={
            "project_id": str(project.id),
            "name": project.name,
            "created_on": project.created_on.isoformat(),
        },
        project_id=project.id,
        actor_id=auth.user_id,
    )
    return await project_service.enrich_project(session, project)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.require_viewer(session, project_id, auth)
    return await project_service.enrich_project(session, project)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    project_in: ProjectUpdate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.require_owner(session, project_id, auth)
    project = await project_service.update_project(session, project, project_in)

    await broadcast_event(
        session=session,
        event_type="project.updated",
        payload={
            "project_id": str(project.id),
            **project_in.model_dump(mode="json", exclude_unset=True),
        },
        project_id=project.id,
        actor_id=auth.user_id,
    )
    return await project_service.enrich_project(session, project)


@router.delete("/{project_id}")
async def delete_project(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Delete a project with all of its stages, connections and custom stages. Owner only."""
    project = await project_service.require_owner(session, project_id, auth)
    name = project.name
    await project_service.delete_project(session, project)

    await broadcast_event(
        session=session,
        event_type="project.deleted",
        payload={"project_id": str(project_id), "name": name},
        actor_id=auth.user_id,
    )
    return {"ok": True}


# ---------------------------------------------------------------------------
# Completion lock
# ---------------------------------------------------------------------------


@router.post("/{project_id}/complete", response_model=ProjectRead)
async def complete_project(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Mark a project completed and lock its stages and connections. Cannot be undone."""
    project = await project_service.mark_project_completed(session, project_id, auth)

    await broadcast_event(
        session=session,
        event_type="project.completed",
        payload={"project_id": str(project.id), "name": project.name},
        project_id=project.id,
        actor_id=auth.user_id,
    )
    return await project_service.enrich_project(session, project)


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


@router.post("/{project_id}/shares", response_model=ProjectShareRead, status_code=201)
async def share_project(
    project_id: uuid.UUID,
    body: ProjectShareAdd,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Share a project with another manager by email."""
    share = await project_service.share_project(session, project_id, body.email, auth)

    await broadcast_event(
        session=session,
        event_type="project.shared",
        payload={"project_id": str(project_id), "user_id": str(share.user_id)},
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return ProjectShareRead(
        project_id=share.project_id, user_id=share.user_id, shared_at=share.shared_at
    )


@router.delete("/{project_id}/shares/{user_id}")
async def unshare_project(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    await project_service.unshare_project(session, project_id, user_id, auth)

    await broadcast_event(
        session=session,
        event_type="project.unshared",
        payload={"project_id": str(project_id), "user_id": str(user_id)},
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return {"ok": True}


# ---------------------------------------------------------------------------
# Custom stages & activity
# ---------------------------------------------------------------------------


@router.delete("/{project_id}/custom-stages/{stage_id}")
async def delete_custom_stage(
    project_id: uuid.UUID,
    stage_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Delete a custom stage of this project, detaching it and its connections first."""
    await stage_service.delete_custom_stage(session, project_id, stage_id, auth)
    project = await project_service.get_project_or_404(session, project_id)

    await broadcast_event(
        session=session,
        event_type="stage.deleted",
        payload={"project_id": str(project_id), "stage_id": str(stage_id), "status": project.status},
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return await project_service.enrich_project(session, project)


@router.get("/{project_id}/events")
async def list_events(
    project_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Recent activity for a project, newest first."""
    project = await project_service.require_viewer(session, project_id, auth)
    return await list_project_events(session, project.id, limit=limit)
