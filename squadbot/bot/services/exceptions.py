"""Exceptions raised by the squad services."""

from __future__ import annotations


class ServiceError(Exception):
    """Base exception for squad service failures."""


class StoreUnavailableError(ServiceError):
    """The Redis store could not be reached. Safe to retry later."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store unavailable during {operation}: {cause}")


class NotFoundError(ServiceError):
    """A referenced squad, posting or member record does not exist.

    Usually this means the record already expired.
    """

    def __init__(self, resource_type: str, resource_id: str | int):
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        super().__init__(f"{resource_type} {resource_id} not found")


class MalformedArgumentError(ServiceError):
    """A caller supplied an out-of-range or unparseable value."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")
