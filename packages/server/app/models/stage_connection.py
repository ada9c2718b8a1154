"""Stage connection model: a directed, display-only edge between two project stages."""

import uuid

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class StageConnection(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "stage_connections"
    __table_args__ = (
        CheckConstraint("from_stage_id != to_stage_id", name="no_self_connection"),
        UniqueConstraint("project_id", "from_stage_id", "to_stage_id", name="uq_stage_connection"),
    )

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    from_stage_id: uuid.UUID = Field(foreign_key="project_stages.id", nullable=False, index=True)
    to_stage_id: uuid.UUID = Field(foreign_key="project_stages.id", nullable=False, index=True)
