"""
Project status derivation.

A project's status follows the state of its attached stages:
- no stages                      -> Pending
- first stage on a Pending project -> Ongoing
- every stage Completed          -> Completed
- stages changed under a Completed project -> Ongoing
- anything else leaves the status as it was (Archived included)

Derivation runs after every project-stage mutation, never after a
connection change. Projects locked by an explicit completion keep their
manual status.
"""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.project import Project
from app.models.project_stage import ProjectStage
from stagetrack_shared.schemas.common import ProjectStatus, StageStatus

log = structlog.get_logger()


def derive_project_status(
    previous: ProjectStatus, stage_statuses: Sequence[StageStatus]
) -> ProjectStatus:
    """Compute a project's status from its previous status and its stages' statuses."""
    n = len(stage_statuses)
    if n == 0:
        return ProjectStatus.PENDING

    if n == 1 and previous == ProjectStatus.PENDING:
        return ProjectStatus.ONGOING

    completed = sum(1 for s in stage_statuses if s == StageStatus.COMPLETED)
    if completed == n:
        return ProjectStatus.COMPLETED
    if previous == ProjectStatus.COMPLETED:
        return ProjectStatus.ONGOING
    return previous


async def _stage_statuses(session: AsyncSession, project_id: uuid.UUID) -> list[StageStatus]:
    result = await session.execute(
        select(ProjectStage.status).where(ProjectStage.project_id == project_id)
    )
    return [StageStatus(row[0]) for row in result.all()]


async def refresh_project_status(session: AsyncSession, project: Project) -> ProjectStatus:
    """Re-derive and persist a project's status. Returns the (possibly unchanged) status."""
    current = ProjectStatus(project.status)
    if project.is_locked:
        return current

    statuses = await _stage_statuses(session, project.id)
    derived = derive_project_status(current, statuses)
    if derived != current:
        project.status = derived.value
        session.add(project)
        await session.flush()
        log.info(
            "project_status_derived",
            project_id=str(project.id),
            from_status=current.value,
            to_status=derived.value,
            stage_count=len(statuses),
        )
    return derived
