from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.tickets.directory import Role


class Permission(str, Enum):
    """Actions guarded at the API boundary."""

    VIEW_ALL = "view_all"
    VIEW_OWN = "view_own"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REPORTS = "reports"


PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(
        {
            Permission.VIEW_ALL,
            Permission.VIEW_OWN,
            Permission.CREATE,
            Permission.UPDATE,
            Permission.DELETE,
            Permission.REPORTS,
        }
    ),
    Role.CUSTOMER_SERVICE: frozenset(
        {Permission.VIEW_ALL, Permission.VIEW_OWN, Permission.CREATE, Permission.UPDATE, Permission.REPORTS}
    ),
    Role.SALES: frozenset({Permission.VIEW_OWN, Permission.CREATE}),
}


class User:
    """Authenticated caller as reported by the identity provider."""

    def __init__(self, user_id: str, role: Role):
        self.user_id = user_id
        self.role = role

    def can(self, permission: Permission) -> bool:
        return permission in PERMISSIONS[self.role]


bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Map a bearer token to a user using the configured token table.

    Tokens are issued by the external identity provider; the table holds
    ``token -> "user_id:role"`` entries.
    """

    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    entry = get_settings().api_tokens.get(token)
    if entry is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    user_id, _, role = entry.partition(":")
    try:
        return User(user_id=user_id, role=Role(role))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials") from exc


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)]
) -> User:
    return resolve_user_from_token(credentials.credentials if credentials else None)


def permission_required(permission: Permission) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds ``permission``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.can(permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
