from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from app.dependencies.auth import Permission, User, permission_required
from app.tickets.attachments import LocalBlobStore
from app.tickets.service import TicketService

require_create = permission_required(Permission.CREATE)
require_view_own = permission_required(Permission.VIEW_OWN)
require_update = permission_required(Permission.UPDATE)
require_delete = permission_required(Permission.DELETE)
require_reports = permission_required(Permission.REPORTS)

SubmitterUser = Annotated[User, Depends(require_create)]
ViewerUser = Annotated[User, Depends(require_view_own)]
AgentUser = Annotated[User, Depends(require_update)]
AdminUser = Annotated[User, Depends(require_delete)]
ReportsUser = Annotated[User, Depends(require_reports)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


async def get_local_blob_store(service: Annotated[TicketService, Depends(get_ticket_service)]) -> LocalBlobStore:
    """Blob store whose files this API serves itself."""

    if not isinstance(service.blob_store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Attachments are not served by this API")
    return service.blob_store
