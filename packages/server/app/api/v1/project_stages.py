"""
Project stage endpoints, nested under /projects/{project_id}/stages.

Each mutation re-derives the project status in the same transaction; the
emitted event carries the resulting status.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.database import get_session
from app.core.events import broadcast_event
from app.services import project_stages as project_stage_service
from app.services.lookups import enrich_project_stage, enrich_project_stages
from app.services.projects import get_project_or_404
from stagetrack_shared.schemas.project_stages import (
    ProjectStageAttach,
    ProjectStageRead,
    ProjectStageUpdate,
)

router = APIRouter()


@router.get("/", response_model=List[ProjectStageRead])
async def list_project_stages(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Stages of a project sorted by start date, undated stages last."""
    project_stages = await project_stage_service.list_project_stages(session, project_id, auth)
    return await enrich_project_stages(session, project_stages)


@router.post("/", response_model=ProjectStageRead, status_code=201)
async def attach_stage(
    project_id: uuid.UUID,
    attach_in: ProjectStageAttach,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    project_stage = await project_stage_service.attach_stage(session, project_id, attach_in, auth)
    project = await get_project_or_404(session, project_id)

    await broadcast_event(
        session=session,
        event_type="project_stage.attached",
        payload={
            "project_stage_id": str(project_stage.id),
            "stage_id": str(project_stage.stage_id),
            "order": project_stage.order,
            "project_status": project.status,
        },
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return await enrich_project_stage(session, project_stage)


@router.patch("/{project_stage_id}", response_model=ProjectStageRead)
async def update_project_stage(
    project_id: uuid.UUID,
    project_stage_id: uuid.UUID,
    update_in: ProjectStageUpdate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    project_stage = await project_stage_service.update_project_stage(
        session, project_id, project_stage_id, update_in, auth
    )
    project = await get_project_or_404(session, project_id)

    await broadcast_event(
        session=session,
        event_type="project_stage.updated",
        payload={
            "project_stage_id": str(project_stage.id),
            "status": project_stage.status,
            "project_status": project.status,
        },
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return await enrich_project_stage(session, project_stage)


@router.delete("/{project_stage_id}")
async def detach_stage(
    project_id: uuid.UUID,
    project_stage_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Detach a stage and every connection touching it."""
    await project_stage_service.detach_stage(session, project_id, project_stage_id, auth)
    project = await get_project_or_404(session, project_id)

    await broadcast_event(
        session=session,
        event_type="project_stage.detached",
        payload={"project_stage_id": str(project_stage_id), "project_status": project.status},
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return {"ok": True}
