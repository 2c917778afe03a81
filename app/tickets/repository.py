from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

import asyncpg

from .models import Ticket, TicketCategory, TicketPriority
from .state import TicketStatus

_TICKET_COLUMNS = """
    id, ticket_number, title, description, category, priority, status, assigned_to,
    resolved_at, resolution_steps, customer_name, customer_whatsapp, attachments,
    created_by, created_at, updated_at, version
"""


class TicketRepository:
    """Data access layer for ticket records.

    Writes are conditional on the ``version`` column: a caller passes the
    version it read and the row only changes if nobody else got there first.
    """

    _CREATE_SEQUENCE_SQL = "CREATE SEQUENCE IF NOT EXISTS ticket_number_seq"

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id TEXT PRIMARY KEY,
        ticket_number TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        description TEXT NULL,
        category TEXT NOT NULL,
        priority TEXT NOT NULL DEFAULT 'medium',
        status TEXT NOT NULL DEFAULT 'open',
        assigned_to TEXT NULL,
        resolved_at TIMESTAMPTZ NULL,
        resolution_steps TEXT NULL,
        customer_name TEXT NULL,
        customer_whatsapp TEXT NULL,
        attachments TEXT[] NOT NULL DEFAULT '{}',
        created_by TEXT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        version INTEGER NOT NULL DEFAULT 1
    )
    """

    _CREATE_INDEXES_SQL = (
        "CREATE INDEX IF NOT EXISTS tickets_status_idx ON tickets (status)",
        "CREATE INDEX IF NOT EXISTS tickets_assigned_to_idx ON tickets (assigned_to)",
        "CREATE INDEX IF NOT EXISTS tickets_created_by_idx ON tickets (created_by)",
    )

    _NEXT_SEQUENCE_SQL = "SELECT nextval('ticket_number_seq')"

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets (
        id, ticket_number, title, description, category, priority, status, assigned_to,
        resolved_at, resolution_steps, customer_name, customer_whatsapp, attachments,
        created_by, created_at, updated_at, version
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, 1)
    RETURNING {_TICKET_COLUMNS}
    """

    _UPDATE_TICKET_SQL = f"""
    UPDATE tickets
    SET title = $3,
        description = $4,
        category = $5,
        priority = $6,
        status = $7,
        assigned_to = $8,
        resolved_at = $9,
        resolution_steps = $10,
        customer_name = $11,
        customer_whatsapp = $12,
        attachments = $13,
        updated_at = $14,
        version = version + 1
    WHERE id = $1 AND version = $2
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"SELECT {_TICKET_COLUMNS} FROM tickets WHERE id = $1"

    _EXISTS_SQL = "SELECT EXISTS(SELECT 1 FROM tickets WHERE id = $1)"

    _DELETE_TICKET_SQL = "DELETE FROM tickets WHERE id = $1 AND version = $2 RETURNING attachments"

    def __init__(self, pool: asyncpg.Pool, *, command_timeout: float | None = None) -> None:
        self._pool = pool
        self._timeout = command_timeout

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_SEQUENCE_SQL)
            await connection.execute(self._CREATE_TICKETS_SQL)
            for statement in self._CREATE_INDEXES_SQL:
                await connection.execute(statement)

    async def next_ticket_sequence(self) -> int:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._NEXT_SEQUENCE_SQL, timeout=self._timeout)
        return int(value)

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                self._INSERT_TICKET_SQL,
                ticket.id,
                ticket.ticket_number,
                ticket.title,
                ticket.description,
                ticket.category.value,
                ticket.priority.value,
                ticket.status.value,
                ticket.assigned_to,
                ticket.resolved_at,
                ticket.resolution_steps,
                ticket.customer_name,
                ticket.customer_whatsapp,
                list(ticket.attachments),
                ticket.created_by,
                ticket.created_at,
                ticket.updated_at,
                timeout=self._timeout,
            )
        if row is None:
            raise RuntimeError("Failed to insert ticket")
        return self._row_to_ticket(row)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id, timeout=self._timeout)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def ticket_exists(self, ticket_id: str) -> bool:
        async with self._pool.acquire() as connection:
            return bool(await connection.fetchval(self._EXISTS_SQL, ticket_id, timeout=self._timeout))

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        statuses: Iterable[TicketStatus] | None = None,
        assigned_to: str | None = None,
        created_by: str | None = None,
        created_since: datetime | None = None,
    ) -> list[Ticket]:
        conditions: list[str] = []
        args: list[Any] = []

        wanted = [status] if status is not None else list(statuses or [])
        if wanted:
            args.append([item.value for item in wanted])
            conditions.append(f"status = ANY(${len(args)}::text[])")
        if assigned_to is not None:
            args.append(assigned_to)
            conditions.append(f"assigned_to = ${len(args)}")
        if created_by is not None:
            args.append(created_by)
            conditions.append(f"created_by = ${len(args)}")
        if created_since is not None:
            args.append(created_since)
            conditions.append(f"created_at >= ${len(args)}")

        query = f"SELECT {_TICKET_COLUMNS} FROM tickets"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC"

        async with self._pool.acquire() as connection:
            rows = await connection.fetch(query, *args, timeout=self._timeout)
        return [self._row_to_ticket(row) for row in rows]

    async def update_ticket(self, ticket: Ticket, *, expected_version: int) -> Ticket | None:
        """Write ``ticket`` if the stored row is still at ``expected_version``.

        Returns ``None`` when no row matched, either because it is gone or
        because its version moved on.
        """

        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                self._UPDATE_TICKET_SQL,
                ticket.id,
                expected_version,
                ticket.title,
                ticket.description,
                ticket.category.value,
                ticket.priority.value,
                ticket.status.value,
                ticket.assigned_to,
                ticket.resolved_at,
                ticket.resolution_steps,
                ticket.customer_name,
                ticket.customer_whatsapp,
                list(ticket.attachments),
                datetime.now(timezone.utc),
                timeout=self._timeout,
            )
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def delete_ticket(self, ticket_id: str, *, expected_version: int) -> tuple[str, ...] | None:
        """Delete the row if it is still at ``expected_version``.

        Returns the attachment references of the row that was removed, or
        ``None`` when nothing matched.
        """

        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                self._DELETE_TICKET_SQL, ticket_id, expected_version, timeout=self._timeout
            )
        if row is None:
            return None
        return tuple(row["attachments"] or ())

    @staticmethod
    def _row_to_ticket(row: Any) -> Ticket:
        return Ticket(
            id=str(row["id"]),
            ticket_number=str(row["ticket_number"]),
            title=str(row["title"]),
            description=row["description"],
            category=TicketCategory(str(row["category"])),
            priority=TicketPriority(str(row["priority"])),
            status=TicketStatus(str(row["status"])),
            assigned_to=row["assigned_to"],
            resolved_at=_ensure_optional_datetime(row["resolved_at"]),
            resolution_steps=row["resolution_steps"],
            customer_name=row["customer_name"],
            customer_whatsapp=row["customer_whatsapp"],
            attachments=tuple(row["attachments"] or ()),
            created_by=row["created_by"],
            created_at=_ensure_datetime(row["created_at"]),
            updated_at=_ensure_datetime(row["updated_at"]),
            version=int(row["version"]),
        )


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _ensure_optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)
