from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .state import TicketStatus


class TicketPriority(str, Enum):
    """Ticket priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    """Complaint categories offered to submitters."""

    TECHNICAL_ISSUE = "Technical Issue"
    BILLING_INQUIRY = "Billing Inquiry"
    SERVICE_INTERRUPTION = "Service Interruption"
    PRODUCT_FEEDBACK = "Product Feedback"
    GENERAL_INQUIRY = "General Inquiry"
    OTHER = "Other"


class _Unset:
    """Marker for patch fields that were not supplied."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(slots=True, frozen=True)
class Ticket:
    """Snapshot of a support ticket."""

    id: str
    ticket_number: str
    title: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    assigned_to: str | None = None
    resolved_at: datetime | None = None
    resolution_steps: str | None = None
    customer_name: str | None = None
    customer_whatsapp: str | None = None
    attachments: tuple[str, ...] = ()
    created_by: str | None = None
    version: int = 1

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to is not None


@dataclass(slots=True, frozen=True)
class TicketPatch:
    """Partial update request; fields left as ``UNSET`` are not touched.

    ``assigned_to=None`` unassigns the ticket, which is why absence is tracked
    separately from ``None``. Enum fields accept either the member or its raw
    string value so callers can hand through unvalidated input.
    """

    title: Any = UNSET
    description: Any = UNSET
    category: Any = UNSET
    priority: Any = UNSET
    status: Any = UNSET
    assigned_to: Any = UNSET
    resolution_steps: Any = UNSET
    customer_name: Any = UNSET
    customer_whatsapp: Any = UNSET
    add_attachments: tuple[str, ...] = ()
    remove_attachments: tuple[str, ...] = ()

    def provided(self) -> dict[str, Any]:
        """Return the scalar fields that were explicitly supplied."""

        names = (
            "title",
            "description",
            "category",
            "priority",
            "status",
            "assigned_to",
            "resolution_steps",
            "customer_name",
            "customer_whatsapp",
        )
        return {name: getattr(self, name) for name in names if getattr(self, name) is not UNSET}


@dataclass(slots=True, frozen=True)
class DeletionPlan:
    """What has to be released when a ticket is deleted."""

    ticket_id: str
    attachment_references: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class DeletionResult:
    """Outcome of deleting a ticket row and releasing its attachments."""

    ticket_id: str
    row_deleted: bool
    released: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return self.row_deleted and not self.failed
