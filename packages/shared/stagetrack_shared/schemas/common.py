from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel

class ProjectStatus(str, Enum):
    PENDING = "Pending"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"

class StageStatus(str, Enum):
    ONGOING = "Ongoing"
    COMPLETED = "Completed"

class Role(str, Enum):
    MANAGER = "manager"
    USER = "user"

class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION_FAILURE = "validation_failure"
    CONFLICT = "conflict"

class ErrorResponse(BaseModel):
    detail: str
    code: ErrorKind


def to_calendar_date(value: object) -> object:
    """Reduce a datetime (or ISO datetime string) to the calendar date it was written on.

    Timezone offsets are ignored: "2024-01-01T23:30:00-05:00" is
    January 1st, not January 2nd in UTC. Anything else is returned untouched
    for pydantic to validate.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return value
    return value


def optional_calendar_date(value: object) -> Optional[date]:
    if value in (None, ""):
        return None
    return to_calendar_date(value)  # type: ignore[return-value]
