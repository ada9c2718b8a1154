# SQLModel definitions, imported here to ensure metadata is populated before create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .project import Project, ProjectShare  # noqa: F401
from .stage import Stage  # noqa: F401
from .project_stage import ProjectStage  # noqa: F401
from .stage_connection import StageConnection  # noqa: F401
from .event import Event  # noqa: F401
