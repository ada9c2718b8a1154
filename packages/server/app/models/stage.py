"""Stage catalog model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Stage(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "stages"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    is_custom: bool = Field(default=False, nullable=False)
    # Set only for custom stages: the single project allowed to use them.
    project_id: Optional[uuid.UUID] = Field(default=None, foreign_key="projects.id", index=True)
