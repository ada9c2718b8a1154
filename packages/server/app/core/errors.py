"""
Domain errors raised by the service layer.

Services never build HTTP responses; app.main maps each kind to a status
code. The message is for logs and API clients, not end-user copy.
"""

from __future__ import annotations

from stagetrack_shared.schemas.common import ErrorKind


class StagetrackError(Exception):
    kind: ErrorKind
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(StagetrackError):
    """A project, stage, project stage or connection id does not exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404


class PermissionDenied(StagetrackError):
    """Caller lacks rights on the project, or the project is locked."""

    kind = ErrorKind.PERMISSION_DENIED
    status_code = 403


class ValidationFailure(StagetrackError):
    kind = ErrorKind.VALIDATION_FAILURE
    status_code = 422


class ConflictError(StagetrackError):
    kind = ErrorKind.CONFLICT
    status_code = 409
