"""
Project activity events.

Every mutation of a project, its stages or its connections is recorded as
an Event row and published on a Redis Pub/Sub channel so that downstream
consumers (notifications, dashboards) can react without polling.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

import redis
import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.redis import get_redis
from app.models.event import Event

log = structlog.get_logger()

REDIS_PUBSUB_CHANNEL = "st:events:pubsub"
MAX_REPLAY_EVENTS = 500


def _serialize(event: Event) -> dict[str, Any]:
    return {
        "id": str(event.id),
        "project_id": str(event.project_id) if event.project_id else None,
        "type": event.type,
        "actor_id": str(event.actor_id) if event.actor_id else None,
        "payload": event.payload,
        "timestamp": event.timestamp.isoformat(),
    }


async def broadcast_event(
    session: AsyncSession,
    event_type: str,
    payload: dict[str, Any],
    project_id: UUID | None = None,
    actor_id: UUID | None = None,
) -> Event:
    """
    Persist an event, commit the unit of work, then publish to Pub/Sub.

    Committing here means subscribers are only told about changes that
    are already durable. A Redis outage is logged and does not undo the
    committed change.
    """
    new_event = Event(
        project_id=project_id,
        type=event_type,
        actor_id=actor_id,
        payload=payload,
        timestamp=datetime.utcnow(),
    )
    session.add(new_event)
    await session.commit()
    await session.refresh(new_event)

    event_json = json.dumps(_serialize(new_event), default=str)
    try:
        client = await get_redis()
        await client.publish(REDIS_PUBSUB_CHANNEL, event_json)
    except redis.RedisError as exc:
        log.warning("event_publish_failed", event_type=event_type, error=str(exc))

    return new_event


async def list_project_events(
    session: AsyncSession, project_id: UUID, limit: int = 100
) -> list[dict[str, Any]]:
    """Return a project's most recent events, newest first."""
    stmt = (
        select(Event)
        .where(Event.project_id == project_id)
        .order_by(Event.timestamp.desc())
        .limit(min(limit, MAX_REPLAY_EVENTS))
    )
    result = await session.execute(stmt)
    return [_serialize(e) for e in result.scalars().all()]
