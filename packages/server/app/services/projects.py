"""
Project service layer: registry, access rules, sharing and the completion lock.

Handles:
- Project CRUD with cascading delete
- Owner / collaborator / viewer checks used by every stage operation
- Sharing a project with other managers
- Explicit completion lock (one-way)
- Enrichment of project data for API responses
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete, extract, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.errors import ConflictError, NotFound, PermissionDenied, ValidationFailure
from app.models.project import Project, ProjectShare
from app.models.project_stage import ProjectStage
from app.models.stage import Stage
from app.models.stage_connection import StageConnection
from app.models.user import User
from stagetrack_shared.schemas.common import ProjectStatus, Role, StageStatus
from stagetrack_shared.schemas.projects import ProjectCreate, ProjectRead, ProjectUpdate

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Lookups & access rules
# ---------------------------------------------------------------------------


async def get_project_or_404(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")
    return project


async def get_shared_user_ids(session: AsyncSession, project_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(ProjectShare.user_id).where(ProjectShare.project_id == project_id)
    )
    return [row[0] for row in result.all()]


async def is_collaborator(
    session: AsyncSession, project: Project, auth: AuthenticatedUser
) -> bool:
    """Owner or a manager the project is shared with."""
    if project.owner_id == auth.user_id:
        return True
    return auth.user_id in await get_shared_user_ids(session, project.id)


async def is_viewer(session: AsyncSession, project: Project, auth: AuthenticatedUser) -> bool:
    """Collaborators, plus plain users reporting to the owning manager."""
    if await is_collaborator(session, project, auth):
        return True
    return auth.role == Role.USER and auth.manager_id == project.owner_id


def ensure_unlocked(project: Project) -> None:
    if project.is_locked:
        raise PermissionDenied("Project is marked completed and can no longer be modified")


async def require_viewer(
    session: AsyncSession, project_id: uuid.UUID, auth: AuthenticatedUser
) -> Project:
    project = await get_project_or_404(session, project_id)
    if not await is_viewer(session, project, auth):
        raise PermissionDenied("Access denied")
    return project


async def require_editor(
    session: AsyncSession, project_id: uuid.UUID, auth: AuthenticatedUser
) -> Project:
    """Load a project the caller may mutate stages/connections of. Rejects locked projects."""
    project = await get_project_or_404(session, project_id)
    if not await is_collaborator(session, project, auth):
        raise PermissionDenied("Only the project owner or a collaborator can modify stages")
    ensure_unlocked(project)
    return project


async def require_owner(
    session: AsyncSession, project_id: uuid.UUID, auth: AuthenticatedUser
) -> Project:
    project = await get_project_or_404(session, project_id)
    if project.owner_id != auth.user_id:
        raise PermissionDenied("Only the project owner can perform this action")
    return project


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


async def enrich_project(session: AsyncSession, project: Project) -> ProjectRead:
    """Convert a Project row to a ProjectRead with its stage references and sharing list."""
    result = await session.execute(
        select(ProjectStage.id, ProjectStage.status)
        .where(ProjectStage.project_id == project.id)
        .order_by(ProjectStage.order)
    )
    rows = result.all()
    shared_with = await get_shared_user_ids(session, project.id)

    return ProjectRead(
        id=project.id,
        name=project.name,
        description=project.description,
        status=project.status,
        created_on=project.created_on,
        owner_id=project.owner_id,
        shared_with=shared_with,
        stage_ids=[row.id for row in rows],
        stage_count=len(rows),
        stage_complete_count=sum(1 for row in rows if row.status == StageStatus.COMPLETED.value),
        locked=project.is_locked,
        locked_at=project.locked_at,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


async def enrich_projects(session: AsyncSession, projects: Sequence[Project]) -> list[ProjectRead]:
    return [await enrich_project(session, p) for p in projects]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_project(
    session: AsyncSession, project_in: ProjectCreate, auth: AuthenticatedUser
) -> Project:
    if not auth.is_manager:
        raise PermissionDenied("Only managers can create projects")

    project = Project(
        name=project_in.name,
        description=project_in.description or None,
        status=ProjectStatus.PENDING.value,
        created_on=project_in.created_on or date.today(),
        owner_id=auth.user_id,
    )
    session.add(project)
    await session.flush()
    log.info("project_created", project_id=str(project.id))
    return project


def _visible_projects_stmt(auth: AuthenticatedUser):
    if auth.role == Role.MANAGER:
        shared = select(ProjectShare.project_id).where(ProjectShare.user_id == auth.user_id)
        return select(Project).where(
            or_(Project.owner_id == auth.user_id, Project.id.in_(shared))
        )
    if auth.manager_id is None:
        return None
    return select(Project).where(Project.owner_id == auth.manager_id)


async def list_projects(
    session: AsyncSession,
    auth: AuthenticatedUser,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> list[Project]:
    """Projects the caller may view, newest first. Month only applies together with year."""
    stmt = _visible_projects_stmt(auth)
    if stmt is None:
        return []

    if year is not None:
        stmt = stmt.where(extract("year", Project.created_on) == year)
        if month is not None:
            stmt = stmt.where(extract("month", Project.created_on) == month)

    stmt = stmt.order_by(Project.created_on.desc(), Project.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_project_years(session: AsyncSession, auth: AuthenticatedUser) -> list[int]:
    projects = await list_projects(session, auth)
    return sorted({p.created_on.year for p in projects}, reverse=True)


async def update_project(
    session: AsyncSession, project: Project, project_in: ProjectUpdate
) -> Project:
    """Update descriptive fields. Status is never set here."""
    data = project_in.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is not None:
        project.name = data["name"]
    if "description" in data:
        project.description = data["description"] or None
    if data.get("created_on") is not None:
        project.created_on = data["created_on"]

    session.add(project)
    await session.flush()
    return project


async def delete_project(session: AsyncSession, project: Project) -> None:
    """Delete a project with its connections, stages, custom catalog entries and shares."""
    await session.execute(delete(StageConnection).where(StageConnection.project_id == project.id))
    await session.execute(delete(ProjectStage).where(ProjectStage.project_id == project.id))
    await session.execute(
        delete(Stage).where(Stage.is_custom.is_(True), Stage.project_id == project.id)
    )
    await session.execute(delete(ProjectShare).where(ProjectShare.project_id == project.id))
    await session.delete(project)
    await session.flush()
    log.info("project_deleted", project_id=str(project.id))


# ---------------------------------------------------------------------------
# Completion lock
# ---------------------------------------------------------------------------


async def mark_project_completed(
    session: AsyncSession, project_id: uuid.UUID, auth: AuthenticatedUser
) -> Project:
    """Manually complete a project and lock it against further stage changes.

    Independent of whether every stage is complete; there is no unlock.
    """
    project = await require_owner(session, project_id, auth)
    if project.is_locked:
        raise ValidationFailure("Project is already marked completed")

    previous = project.status
    project.status = ProjectStatus.COMPLETED.value
    project.locked_at = datetime.utcnow()
    session.add(project)
    await session.flush()
    log.info("project_locked", project_id=str(project.id), from_status=previous)
    return project


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


async def share_project(
    session: AsyncSession, project_id: uuid.UUID, email: str, auth: AuthenticatedUser
) -> ProjectShare:
    project = await require_owner(session, project_id, auth)

    result = await session.execute(
        select(User).where(
            func.lower(User.email) == email.strip().lower(),
            User.role == Role.MANAGER.value,
        )
    )
    target = result.scalar_one_or_none()
    if not target:
        raise NotFound("Manager not found")
    if target.id == project.owner_id:
        raise ValidationFailure("Project owner cannot be added as a collaborator")
    if target.id in await get_shared_user_ids(session, project.id):
        raise ConflictError("Project already shared with this manager")

    share = ProjectShare(project_id=project.id, user_id=target.id)
    session.add(share)
    await session.flush()
    return share


async def unshare_project(
    session: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID, auth: AuthenticatedUser
) -> None:
    project = await require_owner(session, project_id, auth)
    share = await session.get(ProjectShare, (project.id, user_id))
    if not share:
        raise NotFound("Project is not shared with this user")
    await session.delete(share)
    await session.flush()
