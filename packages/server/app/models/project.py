"""Project model."""

from datetime import date, datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(default="Pending", nullable=False)  # Pending | Ongoing | Completed | Archived
    created_on: date = Field(nullable=False, index=True)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    locked_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    # Highest stage order ever issued; detached orders are never handed out again.
    stage_order_seq: int = Field(default=0, nullable=False)

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None


class ProjectShare(SQLModel, table=True):
    __tablename__ = "project_shares"

    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    shared_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(),
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
