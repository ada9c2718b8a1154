from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import date, datetime
from .common import ProjectStatus, optional_calendar_date


def strip_text(value):
    """Trim surrounding whitespace so length limits apply to what is stored."""
    if isinstance(value, str):
        return value.strip()
    return value


class ProjectBase(BaseModel):
    name: str = Field(min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        return strip_text(value)


class ProjectCreate(ProjectBase):
    created_on: Optional[date] = None

    @field_validator("created_on", mode="before")
    @classmethod
    def normalize_created_on(cls, value):
        return optional_calendar_date(value)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    created_on: Optional[date] = None

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        return strip_text(value)

    @field_validator("created_on", mode="before")
    @classmethod
    def normalize_created_on(cls, value):
        return optional_calendar_date(value)


class ProjectRead(ProjectBase):
    id: UUID
    status: ProjectStatus
    created_on: date
    owner_id: UUID
    shared_with: List[UUID] = Field(default_factory=list)
    stage_ids: List[UUID] = Field(default_factory=list)
    stage_count: int = 0
    stage_complete_count: int = 0
    locked: bool = False
    locked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ProjectShareAdd(BaseModel):
    email: str


class ProjectShareRead(BaseModel):
    project_id: UUID
    user_id: UUID
    shared_at: datetime
