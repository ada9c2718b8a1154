"""
Stage connections: directed edges between two project stages of the same
project. Cycles are allowed; self-loops and duplicate edges are not.
"""

from __future__ import annotations

import uuid
from typing import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.errors import ConflictError, NotFound, ValidationFailure
from app.models.project_stage import ProjectStage
from app.models.stage_connection import StageConnection
from app.services.lookups import enrich_project_stages, get_project_stage_or_404
from app.services.projects import require_editor, require_viewer
from stagetrack_shared.schemas.project_stages import ConnectionCreate, ConnectionRead

log = structlog.get_logger()


async def connect_stages(
    session: AsyncSession,
    project_id: uuid.UUID,
    connection_in: ConnectionCreate,
    auth: AuthenticatedUser,
) -> StageConnection:
    project = await require_editor(session, project_id, auth)

    if connection_in.from_stage_id == connection_in.to_stage_id:
        raise ValidationFailure("A stage cannot be connected to itself")

    from_stage = await get_project_stage_or_404(session, connection_in.from_stage_id, project.id)
    to_stage = await get_project_stage_or_404(session, connection_in.to_stage_id, project.id)

    existing = await session.execute(
        select(StageConnection.id).where(
            StageConnection.project_id == project.id,
            StageConnection.from_stage_id == from_stage.id,
            StageConnection.to_stage_id == to_stage.id,
        )
    )
    if existing.first() is not None:
        raise ConflictError("Connection already exists")

    connection = StageConnection(
        project_id=project.id,
        from_stage_id=from_stage.id,
        to_stage_id=to_stage.id,
    )
    session.add(connection)
    await session.flush()
    log.info(
        "stages_connected",
        project_id=str(project.id),
        connection_id=str(connection.id),
        from_stage_id=str(from_stage.id),
        to_stage_id=str(to_stage.id),
    )
    return connection


async def disconnect_stages(
    session: AsyncSession,
    project_id: uuid.UUID,
    connection_id: uuid.UUID,
    auth: AuthenticatedUser,
) -> StageConnection:
    project = await require_editor(session, project_id, auth)
    connection = await session.get(StageConnection, connection_id)
    if not connection or connection.project_id != project.id:
        raise NotFound("Connection not found")

    await session.delete(connection)
    await session.flush()
    log.info("stages_disconnected", project_id=str(project.id), connection_id=str(connection.id))
    return connection


async def list_connections(
    session: AsyncSession, project_id: uuid.UUID, auth: AuthenticatedUser
) -> list[StageConnection]:
    project = await require_viewer(session, project_id, auth)
    result = await session.execute(
        select(StageConnection)
        .where(StageConnection.project_id == project.id)
        .order_by(StageConnection.created_at)
    )
    return list(result.scalars().all())


async def enrich_connections(
    session: AsyncSession, connections: Sequence[StageConnection]
) -> list[ConnectionRead]:
    """Populate both endpoints of each connection with their project stage and catalog stage."""
    endpoint_ids = {c.from_stage_id for c in connections} | {c.to_stage_id for c in connections}
    if not endpoint_ids:
        return []

    result = await session.execute(select(ProjectStage).where(ProjectStage.id.in_(endpoint_ids)))
    endpoints = {ps.id: ps for ps in await enrich_project_stages(session, result.scalars().all())}

    return [
        ConnectionRead(
            id=c.id,
            project_id=c.project_id,
            from_stage_id=c.from_stage_id,
            to_stage_id=c.to_stage_id,
            from_stage=endpoints[c.from_stage_id],
            to_stage=endpoints[c.to_stage_id],
            created_at=c.created_at,
        )
        for c in connections
    ]


async def enrich_connection(session: AsyncSession, connection: StageConnection) -> ConnectionRead:
    return (await enrich_connections(session, [connection]))[0]
