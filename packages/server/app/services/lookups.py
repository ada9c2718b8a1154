"""
Project-scoped lookups and read-time joins shared by the stage services.

Project stages and connections are always fetched together with the
project they must belong to: an id from another project is reported as
not found rather than silently crossing projects.
"""

from __future__ import annotations

import uuid
from typing import Sequence

from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFound
from app.models.project_stage import ProjectStage
from app.models.stage import Stage
from app.models.stage_connection import StageConnection
from stagetrack_shared.schemas.project_stages import ProjectStageRead
from stagetrack_shared.schemas.stages import StageRead


async def get_stage_or_404(session: AsyncSession, stage_id: uuid.UUID) -> Stage:
    stage = await session.get(Stage, stage_id)
    if not stage:
        raise NotFound("Stage not found")
    return stage


async def get_project_stage_or_404(
    session: AsyncSession, project_stage_id: uuid.UUID, project_id: uuid.UUID
) -> ProjectStage:
    project_stage = await session.get(ProjectStage, project_stage_id)
    if not project_stage or project_stage.project_id != project_id:
        raise NotFound("Project stage not found")
    return project_stage


async def delete_connections_touching(session: AsyncSession, project_stage_id: uuid.UUID) -> int:
    """Delete every connection where the project stage is either endpoint. Returns the count."""
    result = await session.execute(
        delete(StageConnection).where(
            or_(
                StageConnection.from_stage_id == project_stage_id,
                StageConnection.to_stage_id == project_stage_id,
            )
        )
    )
    return result.rowcount or 0


def _to_read(project_stage: ProjectStage, stage: Stage) -> ProjectStageRead:
    return ProjectStageRead(
        id=project_stage.id,
        project_id=project_stage.project_id,
        stage_id=project_stage.stage_id,
        status=project_stage.status,
        start_date=project_stage.start_date,
        completion_date=project_stage.completion_date,
        order=project_stage.order,
        stage=StageRead.model_validate(stage),
        created_at=project_stage.created_at,
        updated_at=project_stage.updated_at,
    )


async def enrich_project_stage(session: AsyncSession, project_stage: ProjectStage) -> ProjectStageRead:
    """Populate a project stage with its catalog stage."""
    stage = await get_stage_or_404(session, project_stage.stage_id)
    return _to_read(project_stage, stage)


async def enrich_project_stages(
    session: AsyncSession, project_stages: Sequence[ProjectStage]
) -> list[ProjectStageRead]:
    """Populate many project stages with one catalog query."""
    stage_ids = {ps.stage_id for ps in project_stages}
    if not stage_ids:
        return []
    result = await session.execute(select(Stage).where(Stage.id.in_(stage_ids)))
    stages = {s.id: s for s in result.scalars().all()}
    return [_to_read(ps, stages[ps.stage_id]) for ps in project_stages]
