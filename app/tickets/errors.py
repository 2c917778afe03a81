"""Errors raised by the ticket lifecycle engine and service."""

from __future__ import annotations

from typing import Any, Sequence


class TicketError(RuntimeError):
    """Base error for ticket lifecycle issues."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(TicketError):
    """Raised when a create or update request carries invalid input."""

    def __init__(self, message: str, *, fields: Sequence[str] = ()) -> None:
        self.fields = tuple(fields)
        super().__init__(message, {"fields": list(self.fields)})


class NotFoundError(TicketError):
    """Raised when a referenced ticket or agent does not exist."""

    def __init__(self, resource_type: str, resource_id: str | None = None) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = resource_type
        if resource_id:
            message += f" {resource_id}"
        message += " not found"
        super().__init__(message, {"resource_type": resource_type, "resource_id": resource_id})


class ConflictError(TicketError):
    """Raised when a conditional write loses against a concurrent update."""

    def __init__(self, ticket_id: str, expected_version: int | None = None, *, message: str | None = None) -> None:
        self.ticket_id = ticket_id
        self.expected_version = expected_version
        if message is None:
            message = f"Ticket {ticket_id} was modified concurrently (expected version {expected_version})"
        super().__init__(message, {"ticket_id": ticket_id, "expected_version": expected_version})


class BlobStoreError(TicketError):
    """Raised by blob stores when uploading or deleting objects fails."""

    def __init__(self, message: str, *, paths: Sequence[str] = ()) -> None:
        self.paths = tuple(paths)
        super().__init__(message, {"paths": list(self.paths)})
