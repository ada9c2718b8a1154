"""Project-stage and stage-connection schemas shared by the server and API clients."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator
from pydantic import UUID4

from .common import StageStatus, optional_calendar_date
from .stages import StageRead


# ---------------------------------------------------------------------------
# Project stages
# ---------------------------------------------------------------------------

class ProjectStageAttach(BaseModel):
    """Request body for POST /projects/{projectId}/stages."""
    stage_id: UUID4
    status: StageStatus = StageStatus.ONGOING
    start_date: Optional[date] = None
    completion_date: Optional[date] = None

    @field_validator("start_date", "completion_date", mode="before")
    @classmethod
    def normalize_dates(cls, value):
        return optional_calendar_date(value)


class ProjectStageUpdate(BaseModel):
    """Request body for PATCH /projects/{projectId}/stages/{projectStageId}."""
    status: Optional[StageStatus] = None
    start_date: Optional[date] = None
    completion_date: Optional[date] = None

    @field_validator("start_date", "completion_date", mode="before")
    @classmethod
    def normalize_dates(cls, value):
        return optional_calendar_date(value)


class ProjectStageRead(BaseModel):
    id: UUID4
    project_id: UUID4
    stage_id: UUID4
    status: StageStatus
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    order: int
    stage: StageRead
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

class ConnectionCreate(BaseModel):
    """Request body for POST /projects/{projectId}/connections."""
    from_stage_id: UUID4
    to_stage_id: UUID4


class ConnectionRead(BaseModel):
    id: UUID4
    project_id: UUID4
    from_stage_id: UUID4
    to_stage_id: UUID4
    from_stage: ProjectStageRead
    to_stage: ProjectStageRead
    created_at: datetime

