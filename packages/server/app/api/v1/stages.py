"""
Stage catalog endpoints: global stage templates and project custom stages.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.database import get_session
from app.core.events import broadcast_event
from app.services import stages as stage_service
from stagetrack_shared.schemas.stages import StageCreate, StageRead, StageUpdate

router = APIRouter()


@router.get("/", response_model=List[StageRead])
async def list_stages(
    project_id: Optional[uuid.UUID] = None,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Global stages, plus a project's custom stages when project_id is given."""
    return await stage_service.list_stages(session, auth, project_id=project_id)


@router.post("/", response_model=StageRead, status_code=201)
async def create_stage(
    stage_in: StageCreate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    stage = await stage_service.create_stage(session, stage_in, auth)

    await broadcast_event(
        session=session,
        event_type="stage.created",
        payload={"stage_id": str(stage.id), "name": stage.name, "is_custom": stage.is_custom},
        project_id=stage.project_id,
        actor_id=auth.user_id,
    )
    return stage


@router.get("/{stage_id}", response_model=StageRead)
async def get_stage(
    stage_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    return await stage_service.get_stage(session, stage_id, auth)


@router.patch("/{stage_id}", response_model=StageRead)
async def update_stage(
    stage_id: uuid.UUID,
    stage_in: StageUpdate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    stage = await stage_service.update_stage(session, stage_id, stage_in, auth)

    await broadcast_event(
        session=session,
        event_type="stage.updated",
        payload={"stage_id": str(stage.id), **stage_in.model_dump(exclude_unset=True)},
        project_id=stage.project_id,
        actor_id=auth.user_id,
    )
    return stage


@router.delete("/{stage_id}")
async def delete_stage(
    stage_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    """Delete a catalog stage. Global stages still attached to a project are refused."""
    affected = await stage_service.delete_stage(session, stage_id, auth)

    await broadcast_event(
        session=session,
        event_type="stage.deleted",
        payload={"stage_id": str(stage_id), "affected_projects": [str(pid) for pid in affected]},
        actor_id=auth.user_id,
    )
    return {"ok": True, "affected_projects": [str(pid) for pid in affected]}
