"""
Project stage lifecycle: attaching catalog stages to projects, editing their
status and dates, and detaching them.

Lifecycle per project stage:
    [not attached] -> Ongoing <-> Completed -> [detached]

Date rules:
- Ongoing   requires a start date and never keeps a completion date
- Completed requires both a start date and a completion date
- completion before start is accepted

Every mutation re-derives the owning project's status before returning.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.errors import ConflictError, ValidationFailure
from app.models.project import Project
from app.models.project_stage import ProjectStage
from app.models.stage import Stage
from app.services.lookups import (
    delete_connections_touching,
    get_project_stage_or_404,
    get_stage_or_404,
)
from app.services.projects import require_editor, require_viewer
from app.services.status import refresh_project_status
from stagetrack_shared.schemas.common import StageStatus
from stagetrack_shared.schemas.project_stages import ProjectStageAttach, ProjectStageUpdate

log = structlog.get_logger()


def check_stage_dates(
    status: StageStatus, start_date: Optional[date], completion_date: Optional[date]
) -> None:
    """Raise ValidationFailure unless the dates fit the status."""
    if start_date is None:
        raise ValidationFailure(f"A start date is required for {status.value} stages")
    if status == StageStatus.COMPLETED and completion_date is None:
        raise ValidationFailure("A completion date is required for Completed stages")
    if status == StageStatus.ONGOING and completion_date is not None:
        raise ValidationFailure("Ongoing stages cannot have a completion date")


async def _next_order(session: AsyncSession, project: Project) -> int:
    result = await session.execute(
        select(func.max(ProjectStage.order)).where(ProjectStage.project_id == project.id)
    )
    highest = result.scalar() or 0
    return max(highest, project.stage_order_seq) + 1


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def attach_stage(
    session: AsyncSession,
    project_id: uuid.UUID,
    attach_in: ProjectStageAttach,
    auth: AuthenticatedUser,
) -> ProjectStage:
    project = await require_editor(session, project_id, auth)
    stage = await get_stage_or_404(session, attach_in.stage_id)

    if stage.is_custom and stage.project_id != project.id:
        raise ValidationFailure("Custom stage belongs to a different project")

    existing = await session.execute(
        select(ProjectStage.id).where(
            ProjectStage.project_id == project.id,
            ProjectStage.stage_id == stage.id,
        )
    )
    if existing.first() is not None:
        raise ValidationFailure("Stage is already attached to this project")

    check_stage_dates(attach_in.status, attach_in.start_date, attach_in.completion_date)

    order = await _next_order(session, project)
    project_stage = ProjectStage(
        project_id=project.id,
        stage_id=stage.id,
        status=attach_in.status.value,
        start_date=attach_in.start_date,
        completion_date=attach_in.completion_date,
        order=order,
    )
    session.add(project_stage)
    project.stage_order_seq = order
    session.add(project)
    try:
        await session.flush()
    except IntegrityError as exc:
        # Racing attaches collide on (project_id, order) or (project_id, stage_id).
        log.warning("stage_attach_conflict", project_id=str(project.id), order=order, error=str(exc.orig))
        raise ConflictError("Project stages changed concurrently; retry the attach") from exc

    await refresh_project_status(session, project)
    log.info(
        "stage_attached",
        project_id=str(project.id),
        project_stage_id=str(project_stage.id),
        stage_id=str(stage.id),
        order=order,
    )
    return project_stage


async def update_project_stage(
    session: AsyncSession,
    project_id: uuid.UUID,
    project_stage_id: uuid.UUID,
    update_in: ProjectStageUpdate,
    auth: AuthenticatedUser,
) -> ProjectStage:
    project = await require_editor(session, project_id, auth)
    project_stage = await get_project_stage_or_404(session, project_stage_id, project.id)

    data = update_in.model_dump(exclude_unset=True)
    current = StageStatus(project_stage.status)
    new_status = data.get("status") or current

    start_date = data.get("start_date") or project_stage.start_date

    if new_status == StageStatus.COMPLETED:
        completion_date = data.get("completion_date")
        if completion_date is None and current == StageStatus.COMPLETED:
            completion_date = project_stage.completion_date
    else:
        completion_date = None

    check_stage_dates(new_status, start_date, completion_date)

    project_stage.status = new_status.value
    project_stage.start_date = start_date
    project_stage.completion_date = completion_date
    session.add(project_stage)
    await session.flush()

    await refresh_project_status(session, project)
    log.info(
        "stage_updated",
        project_id=str(project.id),
        project_stage_id=str(project_stage.id),
        from_status=current.value,
        to_status=new_status.value,
    )
    return project_stage


async def detach_stage(
    session: AsyncSession,
    project_id: uuid.UUID,
    project_stage_id: uuid.UUID,
    auth: AuthenticatedUser,
) -> ProjectStage:
    """Remove a stage from a project along with its connections.

    A custom stage of this project is deleted from the catalog as well,
    since no other project can use it.
    """
    project = await require_editor(session, project_id, auth)
    project_stage = await get_project_stage_or_404(session, project_stage_id, project.id)

    removed_connections = await delete_connections_touching(session, project_stage.id)
    await session.delete(project_stage)
    await session.flush()

    stage = await session.get(Stage, project_stage.stage_id)
    if stage is not None and stage.is_custom and stage.project_id == project.id:
        await session.delete(stage)
        await session.flush()

    await refresh_project_status(session, project)
    log.info(
        "stage_detached",
        project_id=str(project.id),
        project_stage_id=str(project_stage.id),
        removed_connections=removed_connections,
    )
    return project_stage


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _by_start_date(project_stage: ProjectStage) -> tuple:
    # Undated stages sort last; attach order breaks ties.
    return (
        project_stage.start_date is None,
        project_stage.start_date or date.max,
        project_stage.order,
    )


async def list_project_stages(
    session: AsyncSession, project_id: uuid.UUID, auth: AuthenticatedUser
) -> list[ProjectStage]:
    project = await require_viewer(session, project_id, auth)
    result = await session.execute(
        select(ProjectStage).where(ProjectStage.project_id == project.id)
    )
    return sorted(result.scalars().all(), key=_by_start_date)
