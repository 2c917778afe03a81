from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

import pytest

from app.tickets.directory import StaticAgentDirectory
from app.tickets.engine import TicketLifecycleEngine
from app.tickets.errors import BlobStoreError
from app.tickets.models import Ticket
from app.tickets.service import TicketService
from app.tickets.state import TicketStatus

T0 = datetime(2024, 3, 14, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class InMemoryTicketRepository:
    """Dict-backed stand-in for TicketRepository with the same version check."""

    def __init__(self, clock: FrozenClock) -> None:
        self._clock = clock
        self._rows: dict[str, Ticket] = {}
        self._sequence = 0
        self.update_calls = 0

    async def ensure_schema(self) -> None:
        return None

    async def next_ticket_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        stored = replace(ticket, version=1)
        self._rows[ticket.id] = stored
        return stored

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        return self._rows.get(ticket_id)

    async def ticket_exists(self, ticket_id: str) -> bool:
        return ticket_id in self._rows

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        statuses: Iterable[TicketStatus] | None = None,
        assigned_to: str | None = None,
        created_by: str | None = None,
        created_since: datetime | None = None,
    ) -> list[Ticket]:
        wanted = {status} if status is not None else set(statuses or ())
        rows = [
            ticket
            for ticket in self._rows.values()
            if (not wanted or ticket.status in wanted)
            and (assigned_to is None or ticket.assigned_to == assigned_to)
            and (created_by is None or ticket.created_by == created_by)
            and (created_since is None or ticket.created_at >= created_since)
        ]
        return sorted(rows, key=lambda ticket: ticket.created_at, reverse=True)

    async def update_ticket(self, ticket: Ticket, *, expected_version: int) -> Ticket | None:
        self.update_calls += 1
        stored = self._rows.get(ticket.id)
        if stored is None or stored.version != expected_version:
            return None
        saved = replace(ticket, version=expected_version + 1, updated_at=self._clock())
        self._rows[ticket.id] = saved
        return saved

    async def delete_ticket(self, ticket_id: str, *, expected_version: int) -> tuple[str, ...] | None:
        stored = self._rows.get(ticket_id)
        if stored is None or stored.version != expected_version:
            return None
        del self._rows[ticket_id]
        return stored.attachments

    def bump_version(self, ticket_id: str) -> None:
        """Simulate a concurrent writer touching the row."""

        stored = self._rows[ticket_id]
        self._rows[ticket_id] = replace(stored, version=stored.version + 1)


class InMemoryBlobStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.failing: set[str] = set()
        self.deleted: list[str] = []

    async def upload(self, path: str, content: bytes, content_type: str | None = None) -> None:
        self.objects[path] = content

    async def delete(self, paths: Iterable[str]) -> None:
        paths = list(paths)
        failed = [path for path in paths if path in self.failing]
        for path in paths:
            if path not in self.failing:
                self.objects.pop(path, None)
                self.deleted.append(path)
        if failed:
            raise BlobStoreError("storage unavailable", paths=failed)

    async def signed_url(self, path: str, expires_in: int) -> str:
        return f"https://blobs.test/{path}?ttl={expires_in}"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def repository(clock: FrozenClock) -> InMemoryTicketRepository:
    return InMemoryTicketRepository(clock)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def directory() -> StaticAgentDirectory:
    return StaticAgentDirectory(
        {
            "agent-1": "customer_service",
            "agent-2": "customer_service",
            "admin-1": "admin",
            "sales-1": "sales",
        }
    )


@pytest.fixture
def engine() -> TicketLifecycleEngine:
    return TicketLifecycleEngine()


@pytest.fixture
def service(repository, directory, blob_store, clock) -> TicketService:
    return TicketService(
        repository=repository,
        directory=directory,
        blob_store=blob_store,
        clock=clock,
    )
