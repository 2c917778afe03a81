"""Ticket lifecycle, SLA evaluation and ticket services."""

from .engine import TicketLifecycleEngine
from .errors import BlobStoreError, ConflictError, NotFoundError, TicketError, ValidationError
from .models import (
    UNSET,
    DeletionPlan,
    DeletionResult,
    Ticket,
    TicketCategory,
    TicketPatch,
    TicketPriority,
)
from .service import TicketService
from .sla import SlaPolicy, SlaStatus, evaluate_sla
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "UNSET",
    "BlobStoreError",
    "ConflictError",
    "DeletionPlan",
    "DeletionResult",
    "NotFoundError",
    "SlaPolicy",
    "SlaStatus",
    "Ticket",
    "TicketCategory",
    "TicketError",
    "TicketLifecycleEngine",
    "TicketPatch",
    "TicketPriority",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "ValidationError",
    "evaluate_sla",
]
