"""
Stage catalog service: global and project-scoped (custom) stage templates.

Custom stages belong to exactly one project and are hard-deleted; deleting
one cascades through every project stage that uses it, their connections,
and the owning project's derived status.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.errors import ConflictError, PermissionDenied, ValidationFailure
from app.models.project_stage import ProjectStage
from app.models.stage import Stage
from app.services.lookups import delete_connections_touching, get_stage_or_404
from app.services.projects import (
    ensure_unlocked,
    get_project_or_404,
    is_viewer,
    require_owner,
)
from app.services.status import refresh_project_status
from stagetrack_shared.schemas.stages import StageCreate, StageUpdate, validate_stage_fields

log = structlog.get_logger()


def _check_fields(name: Optional[str], description: Optional[str]) -> None:
    is_valid, error_msg = validate_stage_fields(name, description)
    if not is_valid:
        raise ValidationFailure(error_msg)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_stage(
    session: AsyncSession, stage_in: StageCreate, auth: AuthenticatedUser
) -> Stage:
    if not auth.is_manager:
        raise PermissionDenied("Only managers can create stages")
    _check_fields(stage_in.name, stage_in.description)

    project_id = None
    if stage_in.is_custom:
        if stage_in.project_id is None:
            raise ValidationFailure("Custom stages must name the project they belong to")
        project = await require_owner(session, stage_in.project_id, auth)
        project_id = project.id

    stage = Stage(
        name=stage_in.name.strip(),
        description=stage_in.description.strip() if stage_in.description else None,
        owner_id=auth.user_id,
        is_custom=stage_in.is_custom,
        project_id=project_id,
    )
    session.add(stage)
    await session.flush()
    log.info("stage_created", stage_id=str(stage.id), is_custom=stage.is_custom)
    return stage


async def list_stages(
    session: AsyncSession, auth: AuthenticatedUser, project_id: Optional[uuid.UUID] = None
) -> list[Stage]:
    """Global stages, plus the custom stages of project_id when the caller can view it."""
    condition = Stage.is_custom.is_(False)
    if project_id is not None:
        project = await get_project_or_404(session, project_id)
        if await is_viewer(session, project, auth):
            condition = or_(
                condition,
                (Stage.is_custom.is_(True)) & (Stage.project_id == project.id),
            )

    result = await session.execute(
        select(Stage).where(condition).order_by(Stage.created_at.desc())
    )
    return list(result.scalars().all())


async def get_stage(
    session: AsyncSession, stage_id: uuid.UUID, auth: AuthenticatedUser
) -> Stage:
    """Global stages are readable by anyone; custom stages only by viewers of their project."""
    stage = await get_stage_or_404(session, stage_id)
    if stage.is_custom and stage.project_id is not None:
        project = await get_project_or_404(session, stage.project_id)
        if not await is_viewer(session, project, auth):
            raise PermissionDenied("Access denied")
    return stage


async def update_stage(
    session: AsyncSession, stage_id: uuid.UUID, stage_in: StageUpdate, auth: AuthenticatedUser
) -> Stage:
    stage = await get_stage_or_404(session, stage_id)
    if stage.owner_id != auth.user_id:
        raise PermissionDenied("Only the stage owner can update it")

    data = stage_in.model_dump(exclude_unset=True)
    _check_fields(data.get("name"), data.get("description"))
    if data.get("name") is not None:
        stage.name = data["name"].strip()
    if "description" in data:
        stage.description = data["description"].strip() if data["description"] else None

    session.add(stage)
    await session.flush()
    return stage


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


async def _cascade_delete_custom_stage(session: AsyncSession, stage: Stage) -> list[uuid.UUID]:
    """Remove a custom stage everywhere it is used. Returns the affected project ids."""
    result = await session.execute(select(ProjectStage).where(ProjectStage.stage_id == stage.id))
    project_stages = list(result.scalars().all())

    affected: list[uuid.UUID] = []
    for ps in project_stages:
        await delete_connections_touching(session, ps.id)
        await session.delete(ps)
        if ps.project_id not in affected:
            affected.append(ps.project_id)
    await session.flush()

    await session.delete(stage)
    await session.flush()

    for pid in affected:
        project = await get_project_or_404(session, pid)
        await refresh_project_status(session, project)

    log.info(
        "custom_stage_deleted",
        stage_id=str(stage.id),
        project_stage_count=len(project_stages),
        affected_projects=[str(pid) for pid in affected],
    )
    return affected


async def delete_stage(
    session: AsyncSession, stage_id: uuid.UUID, auth: AuthenticatedUser
) -> list[uuid.UUID]:
    """Delete a catalog stage.

    Custom stages cascade; global stages may only go once nothing uses them.
    Returns the ids of projects whose stages changed.
    """
    stage = await get_stage_or_404(session, stage_id)
    if stage.owner_id != auth.user_id:
        raise PermissionDenied("Only the stage owner can delete it")

    if stage.is_custom:
        if stage.project_id is not None:
            ensure_unlocked(await get_project_or_404(session, stage.project_id))
        return await _cascade_delete_custom_stage(session, stage)

    in_use = await session.execute(
        select(func.count()).select_from(ProjectStage).where(ProjectStage.stage_id == stage.id)
    )
    if in_use.scalar_one() > 0:
        raise ConflictError("Cannot delete a stage that is being used in projects")

    await session.delete(stage)
    await session.flush()
    log.info("stage_deleted", stage_id=str(stage.id))
    return []


async def delete_custom_stage(
    session: AsyncSession, project_id: uuid.UUID, stage_id: uuid.UUID, auth: AuthenticatedUser
) -> list[uuid.UUID]:
    """Owner-only removal of a project's custom stage, cascading into its project stages."""
    project = await require_owner(session, project_id, auth)
    ensure_unlocked(project)

    stage = await get_stage_or_404(session, stage_id)
    if not stage.is_custom or stage.project_id != project.id:
        raise ValidationFailure("Can only delete custom stages specific to this project")

    return await _cascade_delete_custom_stage(session, stage)
