"""ProjectStage model: one catalog stage attached to one project."""

from datetime import date
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class ProjectStage(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "project_stages"
    __table_args__ = (
        UniqueConstraint("project_id", "stage_id", name="uq_project_stage"),
        UniqueConstraint("project_id", "order", name="uq_project_stage_order"),
    )

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    stage_id: uuid.UUID = Field(foreign_key="stages.id", nullable=False, index=True)
    status: str = Field(default="Ongoing", nullable=False)  # Ongoing | Completed
    start_date: Optional[date] = Field(default=None, sa_type=sa.Date)
    completion_date: Optional[date] = Field(default=None, sa_type=sa.Date)
    order: int = Field(nullable=False)
