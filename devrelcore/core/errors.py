from __future__ import annotations


class DevRelError(Exception):
    """Base error for devrelcore."""


class ValidationError(DevRelError):
    """Input rejected before any storage access."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(DevRelError):
    """A mutating operation referenced a row that does not exist in the tenant."""

    def __init__(self, message: str, *, resource: str | None = None, resource_id: str | None = None) -> None:
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(DevRelError):
    """A unique constraint rejected the write."""
