"""Dashboard aggregates computed from ticket snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from .models import Ticket
from .sla import DEFAULT_SLA_POLICY, SlaPolicy, SlaStatus, evaluate_sla
from .state import TERMINAL_STATUSES


@dataclass(slots=True)
class MonthlySlaSummary:
    month: str
    green: int = 0
    yellow: int = 0
    red: int = 0

    @property
    def total(self) -> int:
        return self.green + self.yellow + self.red


@dataclass(slots=True, frozen=True)
class ResolutionBreakdown:
    resolved: int
    unresolved: int

    @property
    def total(self) -> int:
        return self.resolved + self.unresolved

    @property
    def resolved_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.resolved / self.total


def _month_key(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return f"{value.year:04d}-{value.month:02d}"


def recent_months(now: datetime, months: int) -> list[str]:
    """Return ``months`` month keys ending with the month of ``now``, oldest first."""

    year, month = now.year, now.month
    keys: list[str] = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def window_start(now: datetime, months: int) -> datetime:
    """First instant of the oldest month covered by ``recent_months``."""

    first = recent_months(now, months)[0]
    year, month = (int(part) for part in first.split("-"))
    return datetime(year, month, 1, tzinfo=timezone.utc)


def sla_performance_by_month(
    tickets: Iterable[Ticket],
    now: datetime,
    *,
    months: int = 3,
    policy: SlaPolicy = DEFAULT_SLA_POLICY,
) -> list[MonthlySlaSummary]:
    """Count green, yellow and red tickets per creation month.

    Always returns ``months`` entries, oldest first, including empty months.
    """

    if months < 1:
        raise ValueError("months must be at least 1")
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    buckets = {key: MonthlySlaSummary(month=key) for key in recent_months(now, months)}
    for ticket in tickets:
        bucket = buckets.get(_month_key(ticket.created_at))
        if bucket is None:
            continue
        status = evaluate_sla(ticket.created_at, ticket.resolved_at, ticket.status, now, policy)
        if status is SlaStatus.GREEN:
            bucket.green += 1
        elif status is SlaStatus.YELLOW:
            bucket.yellow += 1
        else:
            bucket.red += 1
    return list(buckets.values())


def resolution_breakdown(tickets: Iterable[Ticket]) -> ResolutionBreakdown:
    resolved = unresolved = 0
    for ticket in tickets:
        if ticket.status in TERMINAL_STATUSES:
            resolved += 1
        else:
            unresolved += 1
    return ResolutionBreakdown(resolved=resolved, unresolved=unresolved)
