from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
ACTIVE_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS})


class TicketStateMachine:
    """Status rules for the ticket lifecycle.

    Every status is reachable from every other one through an explicit update.
    The only automatic moves are tied to assignment: picking up an unassigned
    ``open`` ticket starts work on it, and dropping the assignee of an
    ``in_progress`` ticket puts it back in the open pool.
    """

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def assignment_transition(
        cls,
        current: TicketStatus,
        *,
        was_assigned: bool,
        is_assigned: bool,
    ) -> TicketStatus:
        """Return the status implied by an assignment change."""

        if not was_assigned and is_assigned and current == TicketStatus.OPEN:
            return TicketStatus.IN_PROGRESS
        if was_assigned and not is_assigned and current == TicketStatus.IN_PROGRESS:
            return TicketStatus.OPEN
        return current

    @classmethod
    def resolve_status(
        cls,
        current: TicketStatus,
        requested: TicketStatus | None,
        *,
        was_assigned: bool,
        is_assigned: bool,
    ) -> TicketStatus:
        """Combine an explicitly requested status with the assignment rule.

        A requested status that differs from ``current`` always wins. When the
        request carries no status, or repeats the current one, the assignment
        rule decides.
        """

        if requested is not None and requested != current:
            return requested
        return cls.assignment_transition(current, was_assigned=was_assigned, is_assigned=is_assigned)

    @staticmethod
    def is_terminal(status: TicketStatus) -> bool:
        return status in TERMINAL_STATUSES
