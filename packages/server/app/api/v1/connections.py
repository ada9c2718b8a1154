"""
Stage connection endpoints, nested under /projects/{project_id}/connections.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user
from app.core.database import get_session
from app.core.events import broadcast_event
from app.services import connections as connection_service
from stagetrack_shared.schemas.project_stages import ConnectionCreate, ConnectionRead

router = APIRouter()


@router.get("/", response_model=List[ConnectionRead])
async def list_connections(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    connections = await connection_service.list_connections(session, project_id, auth)
    return await connection_service.enrich_connections(session, connections)


@router.post("/", response_model=ConnectionRead, status_code=201)
async def create_connection(
    project_id: uuid.UUID,
    connection_in: ConnectionCreate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    connection = await connection_service.connect_stages(session, project_id, connection_in, auth)

    await broadcast_event(
        session=session,
        event_type="connection.created",
        payload={
            "connection_id": str(connection.id),
            "from_stage_id": str(connection.from_stage_id),
            "to_stage_id": str(connection.to_stage_id),
        },
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return await connection_service.enrich_connection(session, connection)


@router.delete("/{connection_id}")
async def delete_connection(
    project_id: uuid.UUID,
    connection_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    session: AsyncSession = Depends(get_session),
):
    await connection_service.disconnect_stages(session, project_id, connection_id, auth)

    await broadcast_event(
        session=session,
        event_type="connection.deleted",
        payload={"connection_id": str(connection_id)},
        project_id=project_id,
        actor_id=auth.user_id,
    )
    return {"ok": True}
