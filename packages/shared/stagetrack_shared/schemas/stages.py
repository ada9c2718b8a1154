"""Stage catalog schemas and name validation."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from pydantic import UUID4

STAGE_NAME_MIN = 3
STAGE_NAME_MAX = 100
STAGE_DESCRIPTION_MAX = 1000

# Matched as case-insensitive substrings, for global and custom stages alike.
STAGE_NAME_DENYLIST: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        "script",
        "javascript",
        "eval",
        "exec",
        "expression",
        "function",
        "select",
        "insert",
        "update",
        "delete",
        "drop",
        "union",
    )
]


class StageCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_custom: bool = False
    project_id: Optional[UUID4] = None  # required when is_custom


class StageUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class StageRead(BaseModel):
    id: UUID4
    name: str
    description: Optional[str] = None
    is_custom: bool
    project_id: Optional[UUID4] = None
    owner_id: UUID4
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def validate_stage_fields(name: Optional[str], description: Optional[str]) -> tuple[bool, str]:
    """Validate a stage name and description.

    Rules:
    - Name (when given) is 3-100 characters after trimming.
    - Name must not contain a denylisted script or SQL keyword.
    - Description is at most 1000 characters.

    Returns (is_valid, error_message).
    """
    if name is not None:
        trimmed = name.strip()
        if len(trimmed) < STAGE_NAME_MIN:
            return False, f"Stage name must be at least {STAGE_NAME_MIN} characters"
        if len(trimmed) > STAGE_NAME_MAX:
            return False, f"Stage name must be at most {STAGE_NAME_MAX} characters"
        if any(pattern.search(trimmed) for pattern in STAGE_NAME_DENYLIST):
            return False, "Stage name contains invalid characters"

    if description is not None and len(description.strip()) > STAGE_DESCRIPTION_MAX:
        return False, f"Stage description must be at most {STAGE_DESCRIPTION_MAX} characters"

    return True, ""
