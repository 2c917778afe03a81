from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from opentelemetry import trace

from .attachments import (
    DEFAULT_MAX_ATTACHMENT_MB,
    BlobStore,
    attachment_ticket_id,
    build_attachment_path,
    normalize_attachment_path,
    validate_upload,
)
from .directory import AgentDirectory, is_agent
from .engine import TicketLifecycleEngine
from .errors import BlobStoreError, ConflictError, NotFoundError, TicketError, ValidationError
from .models import UNSET, DeletionResult, Ticket, TicketCategory, TicketPatch
from .reports import (
    MonthlySlaSummary,
    ResolutionBreakdown,
    resolution_breakdown,
    sla_performance_by_month,
    window_start,
)
from .repository import TicketRepository
from .sla import DEFAULT_SLA_POLICY, SlaPolicy, SlaStatus, evaluate_sla
from .state import ACTIVE_STATUSES, TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TicketService:
    """High level orchestration for ticket lifecycle operations.

    The engine decides what the next snapshot looks like; this class fetches
    the current one, checks references against the directory, and performs
    the conditional write.
    """

    repository: TicketRepository
    directory: AgentDirectory
    blob_store: BlobStore
    engine: TicketLifecycleEngine = field(default_factory=TicketLifecycleEngine)
    sla_policy: SlaPolicy = DEFAULT_SLA_POLICY
    max_update_attempts: int = 3
    attachment_url_ttl: int = 60 * 60 * 24
    max_attachment_mb: int = DEFAULT_MAX_ATTACHMENT_MB
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        if self.max_update_attempts < 1:
            raise ValueError("max_update_attempts must be at least 1")

    async def ensure_schema(self) -> None:
        await self.repository.ensure_schema()

    async def create_ticket(
        self,
        *,
        title: str,
        category: TicketCategory | str,
        actor: str,
        customer_name: str | None = None,
        customer_whatsapp: str | None = None,
        description: str | None = None,
    ) -> Ticket:
        sequence = await self.repository.next_ticket_sequence()
        ticket = self.engine.create(
            title,
            category,
            customer_name,
            customer_whatsapp,
            description,
            sequence=sequence,
            created_by=actor,
            now=self.clock(),
        )
        created = await self.repository.create_ticket(ticket)
        logger.info("Ticket %s created by %s", created.ticket_number, actor)
        return created

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        assigned_to: str | None = None,
        created_by: str | None = None,
    ) -> list[Ticket]:
        return await self.repository.list_tickets(status=status, assigned_to=assigned_to, created_by=created_by)

    async def active_queue(self) -> list[Ticket]:
        """Tickets agents still have to work on, newest first."""

        return await self.repository.list_tickets(statuses=ACTIVE_STATUSES)

    async def update_ticket(self, ticket_id: str, patch: TicketPatch, *, actor: str) -> Ticket:
        """Apply ``patch`` to the latest snapshot, re-reading on write conflicts."""

        with tracer.start_as_current_span("tickets.update") as span:
            span.set_attribute("ticket.id", ticket_id)
            attempt = 1
            while True:
                current = await self.get_ticket(ticket_id)
                try:
                    return await self.save_update(current, patch, actor=actor)
                except ConflictError:
                    if attempt >= self.max_update_attempts:
                        raise
                    logger.warning(
                        "Conflict updating ticket %s (attempt %d/%d)", ticket_id, attempt, self.max_update_attempts
                    )
                    attempt += 1

    async def save_update(self, current: Ticket, patch: TicketPatch, *, actor: str) -> Ticket:
        """Apply ``patch`` to a caller-held snapshot with a single conditional write."""

        await self._check_assignee(current, patch)
        updated = self.engine.apply_update(current, patch, now=self.clock())
        saved = await self._write(updated, expected_version=current.version)
        if saved.status != current.status:
            logger.info("Ticket %s moved %s -> %s by %s", saved.id, current.status.value, saved.status.value, actor)
        return saved

    async def add_attachment(
        self,
        ticket_id: str,
        *,
        filename: str,
        content: bytes,
        content_type: str | None,
        actor: str,
    ) -> Ticket:
        validate_upload(filename, content_type, len(content), max_mb=self.max_attachment_mb)
        await self.get_ticket(ticket_id)

        path = build_attachment_path(actor, ticket_id, filename)
        await self.blob_store.upload(path, content, content_type)
        try:
            return await self.update_ticket(ticket_id, TicketPatch(add_attachments=(path,)), actor=actor)
        except TicketError:
            await self._discard_upload(path)
            raise

    async def remove_attachment(self, ticket_id: str, reference: str, *, actor: str) -> Ticket:
        """Release ``reference`` from storage and drop it from the ticket.

        Both steps are idempotent, so a caller that saw a failure can simply
        call again.
        """

        current = await self.get_ticket(ticket_id)
        if reference not in current.attachments:
            return current
        await self.blob_store.delete([normalize_attachment_path(reference)])
        return await self.update_ticket(ticket_id, TicketPatch(remove_attachments=(reference,)), actor=actor)

    async def attachment_urls(self, ticket_id: str) -> dict[str, str]:
        ticket = await self.get_ticket(ticket_id)
        return {
            reference: await self.blob_store.signed_url(normalize_attachment_path(reference), self.attachment_url_ttl)
            for reference in ticket.attachments
        }

    async def delete_ticket(self, ticket_id: str, *, actor: str) -> DeletionResult:
        """Delete the row, then release its attachments.

        The row goes first so no surviving ticket ever points at a released
        blob. The delete is conditional on the version that was read, and the
        references released are the ones the deleted row actually held.
        Attachments that could not be released are reported in the result
        for :meth:`release_attachments` to retry.
        """

        with tracer.start_as_current_span("tickets.delete") as span:
            span.set_attribute("ticket.id", ticket_id)
            attempt = 1
            while True:
                current = await self.get_ticket(ticket_id)
                plan = self.engine.plan_deletion(current)
                references = await self.repository.delete_ticket(plan.ticket_id, expected_version=current.version)
                if references is not None:
                    break
                if not await self.repository.ticket_exists(ticket_id):
                    raise NotFoundError("Ticket", ticket_id)
                if attempt >= self.max_update_attempts:
                    raise ConflictError(ticket_id, current.version)
                logger.warning(
                    "Conflict deleting ticket %s (attempt %d/%d)", ticket_id, attempt, self.max_update_attempts
                )
                attempt += 1

            logger.info("Ticket %s deleted by %s", ticket_id, actor)
            result = await self._release(ticket_id, references, row_deleted=True)
            span.set_attribute("ticket.attachments_failed", len(result.failed))
            return result

    async def release_attachments(self, ticket_id: str, references: Sequence[str]) -> DeletionResult:
        """Retry releasing attachments left behind by :meth:`delete_ticket`.

        Only references stored under the ticket's own path prefix are
        accepted, and only once the ticket row is gone.
        """

        foreign = [reference for reference in references if attachment_ticket_id(reference) != ticket_id]
        if foreign:
            raise ValidationError(
                f"References do not belong to ticket {ticket_id}: {', '.join(foreign)}",
                fields=["references"],
            )
        row_deleted = not await self.repository.ticket_exists(ticket_id)
        if not row_deleted:
            raise ConflictError(
                ticket_id,
                message=f"Ticket {ticket_id} still exists; delete it before releasing its attachments",
            )
        return await self._release(ticket_id, references, row_deleted=row_deleted)

    async def _release(self, ticket_id: str, references: Sequence[str], *, row_deleted: bool) -> DeletionResult:
        released: list[str] = []
        failed: list[str] = []
        errors: dict[str, str] = {}
        for reference in references:
            try:
                await self.blob_store.delete([normalize_attachment_path(reference)])
            except BlobStoreError as exc:
                logger.error("Failed to release attachment %s of ticket %s: %s", reference, ticket_id, exc)
                failed.append(reference)
                errors[reference] = exc.message
            else:
                released.append(reference)
        return DeletionResult(
            ticket_id=ticket_id,
            row_deleted=row_deleted,
            released=tuple(released),
            failed=tuple(failed),
            errors=errors,
        )

    def sla_status(self, ticket: Ticket, *, now: datetime | None = None) -> SlaStatus:
        return evaluate_sla(ticket.created_at, ticket.resolved_at, ticket.status, now or self.clock(), self.sla_policy)

    async def sla_report(self, *, months: int = 3) -> list[MonthlySlaSummary]:
        now = self.clock()
        tickets = await self.repository.list_tickets(created_since=window_start(now, months))
        return sla_performance_by_month(tickets, now, months=months, policy=self.sla_policy)

    async def resolution_report(self, *, months: int = 3) -> ResolutionBreakdown:
        now = self.clock()
        tickets = await self.repository.list_tickets(created_since=window_start(now, months))
        return resolution_breakdown(tickets)

    async def _check_assignee(self, current: Ticket, patch: TicketPatch) -> None:
        assignee = patch.assigned_to
        if assignee is UNSET or assignee is None or assignee == current.assigned_to:
            return
        if not isinstance(assignee, str) or not assignee.strip():
            # Left for the engine to reject as a validation error.
            return
        if not await is_agent(self.directory, assignee.strip()):
            raise NotFoundError("Agent", assignee)

    async def _write(self, ticket: Ticket, *, expected_version: int) -> Ticket:
        saved = await self.repository.update_ticket(ticket, expected_version=expected_version)
        if saved is not None:
            return saved
        if not await self.repository.ticket_exists(ticket.id):
            raise NotFoundError("Ticket", ticket.id)
        raise ConflictError(ticket.id, expected_version)

    async def _discard_upload(self, path: str) -> None:
        try:
            await self.blob_store.delete([path])
        except BlobStoreError:
            logger.exception("Could not discard orphaned upload %s", path)
