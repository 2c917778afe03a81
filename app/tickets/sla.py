"""Traffic-light SLA classification for tickets."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from .state import TERMINAL_STATUSES, TicketStatus


class SlaStatus(str, Enum):
    """SLA colour reported on dashboards."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True, slots=True)
class SlaPolicy:
    """Time limits measured from ticket creation."""

    green_limit: timedelta = timedelta(hours=19)
    red_limit: timedelta = timedelta(hours=24)

    def __post_init__(self) -> None:
        if self.green_limit <= timedelta(0):
            raise ValueError("green_limit must be positive")
        if self.green_limit > self.red_limit:
            raise ValueError("green_limit cannot exceed red_limit")

    @classmethod
    def from_hours(cls, green_hours: float, red_hours: float) -> SlaPolicy:
        return cls(green_limit=timedelta(hours=green_hours), red_limit=timedelta(hours=red_hours))


DEFAULT_SLA_POLICY = SlaPolicy()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def evaluate_sla(
    created_at: datetime,
    resolved_at: datetime | None,
    status: TicketStatus | str,
    now: datetime,
    policy: SlaPolicy = DEFAULT_SLA_POLICY,
) -> SlaStatus:
    """Classify a ticket as green, yellow or red at ``now``.

    Resolved or closed tickets with a resolution time are judged on how long
    resolution took and never turn yellow. Anything else is judged on how long
    it has been open so far. Each bracket includes its upper bound.
    """

    created = _as_utc(created_at)
    if TicketStatus(status) in TERMINAL_STATUSES and resolved_at is not None:
        elapsed = _as_utc(resolved_at) - created
        return SlaStatus.GREEN if elapsed <= policy.red_limit else SlaStatus.RED

    elapsed = _as_utc(now) - created
    if elapsed <= policy.green_limit:
        return SlaStatus.GREEN
    if elapsed <= policy.red_limit:
        return SlaStatus.YELLOW
    return SlaStatus.RED


def sla_deadline(created_at: datetime, policy: SlaPolicy = DEFAULT_SLA_POLICY) -> datetime:
    """Return the instant after which a ticket is in breach."""

    return _as_utc(created_at) + policy.red_limit
