"""Workflow error taxonomy shared by the services and the JSON blueprints."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every error the workflow engine reports to callers."""

    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {'error': self.message, 'code': self.code}


class ValidationError(WorkflowError):
    """A required field, reason or merge target is missing or malformed."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.fields:
            payload['fields'] = self.fields
        return payload


class InvalidStateError(WorkflowError):
    """The entity's current state does not permit the requested transition."""

    status_code = 409
    code = "invalid_state"


class ConflictError(WorkflowError):
    """The row changed underneath us; re-fetch before retrying."""

    status_code = 409
    code = "conflict"


class NotFoundError(WorkflowError):
    status_code = 404
    code = "not_found"


class PermissionDeniedError(WorkflowError):
    status_code = 403
    code = "forbidden"


class StoreError(WorkflowError):
    """Persistence failed; the write did not happen."""

    status_code = 500
    code = "store_error"


__all__ = [
    "WorkflowError",
    "ValidationError",
    "InvalidStateError",
    "ConflictError",
    "NotFoundError",
    "PermissionDeniedError",
    "StoreError",
]
