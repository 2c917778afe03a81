from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar
from uuid import uuid4

from .contact import DEFAULT_COUNTRY_CODE, format_whatsapp_number
from .errors import NotFoundError, ValidationError
from .models import UNSET, DeletionPlan, Ticket, TicketCategory, TicketPatch, TicketPriority
from .state import TicketStateMachine, TicketStatus

E = TypeVar("E", bound=Enum)

DEFAULT_TICKET_NUMBER_PREFIX = "BKT"


def format_ticket_number(sequence: int, created_at: datetime, prefix: str = DEFAULT_TICKET_NUMBER_PREFIX) -> str:
    """Render the human readable ticket number, e.g. ``BKT-20240131-0007``."""

    return f"{prefix}-{created_at:%Y%m%d}-{sequence:04d}"


def _coerce_enum(enum_type: type[E], value: Any) -> E | None:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        return None


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class TicketLifecycleEngine:
    """Validate and apply ticket mutations without touching storage.

    Every method takes a snapshot and returns a new one; nothing is kept
    between calls, so a single engine can be shared freely.
    """

    def __init__(
        self,
        *,
        ticket_number_prefix: str = DEFAULT_TICKET_NUMBER_PREFIX,
        whatsapp_country_code: str = DEFAULT_COUNTRY_CODE,
        state_machine: type[TicketStateMachine] = TicketStateMachine,
    ) -> None:
        self._prefix = ticket_number_prefix
        self._country_code = whatsapp_country_code
        self._state_machine = state_machine

    @property
    def whatsapp_country_code(self) -> str:
        return self._country_code

    def create(
        self,
        title: str,
        category: TicketCategory | str,
        customer_name: str | None = None,
        customer_whatsapp: str | None = None,
        description: str | None = None,
        *,
        sequence: int,
        created_by: str | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        invalid: list[str] = []
        clean_title = _clean_text(title)
        if clean_title is None:
            invalid.append("title")
        parsed_category = _coerce_enum(TicketCategory, category)
        if parsed_category is None:
            invalid.append("category")
        if sequence < 1:
            invalid.append("sequence")
        if invalid:
            raise ValidationError(f"Invalid ticket fields: {', '.join(invalid)}", fields=invalid)

        created_at = now or datetime.now(timezone.utc)
        return Ticket(
            id=str(uuid4()),
            ticket_number=format_ticket_number(sequence, created_at, self._prefix),
            title=clean_title,
            category=parsed_category,
            priority=TicketPriority.MEDIUM,
            status=self._state_machine.initial_state(),
            created_at=created_at,
            updated_at=created_at,
            description=description,
            customer_name=_clean_text(customer_name),
            customer_whatsapp=format_whatsapp_number(customer_whatsapp, self._country_code),
            created_by=created_by,
        )

    def apply_update(
        self,
        current: Ticket | None,
        patch: TicketPatch,
        *,
        now: datetime | None = None,
    ) -> Ticket:
        if current is None:
            raise NotFoundError("Ticket")

        changes, requested_status = self._validate_patch(patch)
        now = now or datetime.now(timezone.utc)

        assigned_to = changes.get("assigned_to", current.assigned_to)
        status = self._state_machine.resolve_status(
            current.status,
            requested_status,
            was_assigned=current.is_assigned,
            is_assigned=assigned_to is not None,
        )
        changes["status"] = status

        steps = patch.resolution_steps
        if self._state_machine.is_terminal(status):
            if current.resolved_at is None:
                changes["resolved_at"] = now
                changes["resolution_steps"] = None if steps is UNSET else steps
            elif steps is not UNSET:
                changes["resolution_steps"] = steps
        elif current.resolved_at is not None:
            changes["resolved_at"] = None
            changes["resolution_steps"] = None
        else:
            changes.pop("resolution_steps", None)

        updated = replace(current, **changes)
        for reference in patch.add_attachments:
            updated = self.add_attachment(updated, reference)
        for reference in patch.remove_attachments:
            updated = self.remove_attachment(updated, reference)
        return updated

    def add_attachment(self, current: Ticket, reference: str) -> Ticket:
        clean = _clean_text(reference)
        if clean is None:
            raise ValidationError("Attachment reference cannot be empty", fields=["attachments"])
        if clean in current.attachments:
            return current
        return replace(current, attachments=(*current.attachments, clean))

    def remove_attachment(self, current: Ticket, reference: str) -> Ticket:
        if reference not in current.attachments:
            return current
        return replace(current, attachments=tuple(item for item in current.attachments if item != reference))

    def plan_deletion(self, current: Ticket | None) -> DeletionPlan:
        if current is None:
            raise NotFoundError("Ticket")
        return DeletionPlan(ticket_id=current.id, attachment_references=tuple(current.attachments))

    def _validate_patch(self, patch: TicketPatch) -> tuple[dict[str, Any], TicketStatus | None]:
        provided = patch.provided()
        changes: dict[str, Any] = {}
        invalid: list[str] = []
        requested_status: TicketStatus | None = None

        if "title" in provided:
            title = _clean_text(provided["title"])
            if title is None:
                invalid.append("title")
            changes["title"] = title
        if "status" in provided:
            requested_status = _coerce_enum(TicketStatus, provided["status"])
            if requested_status is None:
                invalid.append("status")
        if "priority" in provided:
            changes["priority"] = _coerce_enum(TicketPriority, provided["priority"])
            if changes["priority"] is None:
                invalid.append("priority")
        if "category" in provided:
            changes["category"] = _coerce_enum(TicketCategory, provided["category"])
            if changes["category"] is None:
                invalid.append("category")
        if "assigned_to" in provided:
            assignee = provided["assigned_to"]
            if assignee is not None:
                assignee = _clean_text(assignee)
                if assignee is None:
                    invalid.append("assigned_to")
            changes["assigned_to"] = assignee
        if "description" in provided:
            changes["description"] = provided["description"]
        if "resolution_steps" in provided:
            changes["resolution_steps"] = provided["resolution_steps"]
        if "customer_name" in provided:
            changes["customer_name"] = _clean_text(provided["customer_name"])
        if "customer_whatsapp" in provided:
            changes["customer_whatsapp"] = format_whatsapp_number(provided["customer_whatsapp"], self._country_code)

        if any(not _clean_text(reference) for reference in patch.add_attachments):
            invalid.append("attachments")

        if invalid:
            raise ValidationError(f"Invalid ticket fields: {', '.join(invalid)}", fields=invalid)
        return changes, requested_status
