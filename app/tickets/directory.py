"""User and role directory used to validate ticket assignment."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Protocol

import asyncpg

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Roles handed out by the identity provider."""

    ADMIN = "admin"
    CUSTOMER_SERVICE = "customer_service"
    SALES = "sales"


AGENT_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.CUSTOMER_SERVICE})


class AgentDirectory(Protocol):
    async def get_role(self, user_id: str) -> Role | None:
        ...


async def is_agent(directory: AgentDirectory, user_id: str) -> bool:
    """Return whether ``user_id`` may have tickets assigned to them."""

    return await directory.get_role(user_id) in AGENT_ROLES


class StaticAgentDirectory:
    """Directory backed by a fixed ``user_id -> role`` mapping."""

    def __init__(self, roles: Mapping[str, Role | str]) -> None:
        self._roles = {user_id: Role(role) for user_id, role in roles.items()}

    async def get_role(self, user_id: str) -> Role | None:
        return self._roles.get(user_id)


class PostgresAgentDirectory:
    """Directory reading roles from the ``profiles`` table."""

    _CREATE_PROFILES_SQL = """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        email TEXT NULL,
        first_name TEXT NULL,
        last_name TEXT NULL,
        role TEXT NOT NULL DEFAULT 'sales'
    )
    """

    _SELECT_ROLE_SQL = "SELECT role FROM profiles WHERE id = $1"

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_PROFILES_SQL)

    async def get_role(self, user_id: str) -> Role | None:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._SELECT_ROLE_SQL, user_id)
        if value is None:
            return None
        try:
            return Role(str(value))
        except ValueError:
            logger.warning("Profile %s has unknown role %r", user_id, value)
            return None
