from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.dependencies.auth import Permission, User
from app.dependencies.tickets import AdminUser, AgentUser, SubmitterUser, ViewerUser, get_ticket_service
from app.tickets.contact import whatsapp_link
from app.tickets.errors import BlobStoreError, ConflictError, NotFoundError, TicketError, ValidationError
from app.tickets.models import DeletionResult, Ticket, TicketPatch
from app.tickets.service import TicketService
from app.tickets.sla import SlaStatus, sla_deadline
from app.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str
    category: str
    description: str | None = None
    customer_name: str | None = None
    customer_whatsapp: str | None = None


class TicketUpdateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    priority: str | None = None
    status: str | None = None
    assigned_to: str | None = None
    resolution_steps: str | None = None
    customer_name: str | None = None
    customer_whatsapp: str | None = None
    expected_version: int | None = Field(default=None, ge=1)

    def to_patch(self) -> TicketPatch:
        fields = self.model_fields_set - {"expected_version"}
        if not fields:
            raise HTTPException(status_code=400, detail="No fields provided for update")
        values: dict[str, Any] = {name: getattr(self, name) for name in fields}
        if "assigned_to" in values and not values["assigned_to"]:
            values["assigned_to"] = None
        return TicketPatch(**values)


class ReleaseRequest(BaseModel):
    references: list[str] = Field(..., min_length=1)


class TicketResponse(BaseModel):
    id: str
    ticket_number: str
    title: str
    description: str | None
    category: str
    priority: str
    status: TicketStatus
    assigned_to: str | None
    resolved_at: datetime | None
    resolution_steps: str | None
    customer_name: str | None
    customer_whatsapp: str | None
    whatsapp_link: str | None
    attachments: list[str]
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    version: int
    sla_status: SlaStatus
    sla_deadline: datetime


class DeletionResponse(BaseModel):
    ticket_id: str
    row_deleted: bool
    released: list[str]
    failed: list[str]
    errors: dict[str, str]


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _to_response(ticket: Ticket, service: TicketService) -> TicketResponse:
    return TicketResponse(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        title=ticket.title,
        description=ticket.description,
        category=ticket.category.value,
        priority=ticket.priority.value,
        status=ticket.status,
        assigned_to=ticket.assigned_to,
        resolved_at=ticket.resolved_at,
        resolution_steps=ticket.resolution_steps,
        customer_name=ticket.customer_name,
        customer_whatsapp=ticket.customer_whatsapp,
        whatsapp_link=whatsapp_link(ticket.customer_whatsapp, service.engine.whatsapp_country_code),
        attachments=list(ticket.attachments),
        created_by=ticket.created_by,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        version=ticket.version,
        sla_status=service.sla_status(ticket),
        sla_deadline=sla_deadline(ticket.created_at, service.sla_policy),
    )


def _to_deletion_response(result: DeletionResult) -> DeletionResponse:
    return DeletionResponse(
        ticket_id=result.ticket_id,
        row_deleted=result.row_deleted,
        released=list(result.released),
        failed=list(result.failed),
        errors=dict(result.errors),
    )


def http_error(exc: TicketError) -> HTTPException:
    """Translate a ticket error into the matching HTTP error."""

    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"message": exc.message, "fields": list(exc.fields)})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, BlobStoreError):
        return HTTPException(status_code=502, detail={"message": exc.message, "paths": list(exc.paths)})
    return HTTPException(status_code=500, detail=exc.message)


async def _visible_ticket(service: TicketService, ticket_id: str, user: User) -> Ticket:
    try:
        ticket = await service.get_ticket(ticket_id)
    except TicketError as exc:
        raise http_error(exc) from exc
    if not user.can(Permission.VIEW_ALL) and ticket.created_by != user.user_id:
        raise HTTPException(status_code=404, detail=f"Ticket {ticket_id} not found")
    return ticket


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: SubmitterUser,
) -> TicketResponse:
    try:
        ticket = await service.create_ticket(
            title=payload.title,
            category=payload.category,
            description=payload.description,
            customer_name=payload.customer_name,
            customer_whatsapp=payload.customer_whatsapp,
            actor=user.user_id,
        )
    except TicketError as exc:
        raise http_error(exc) from exc
    return _to_response(ticket, service)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: ViewerUser,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    assigned_to: str | None = Query(default=None),
) -> list[TicketResponse]:
    created_by = None if user.can(Permission.VIEW_ALL) else user.user_id
    tickets = await service.list_tickets(status=status_filter, assigned_to=assigned_to, created_by=created_by)
    return [_to_response(ticket, service) for ticket in tickets]


@router.get("/queue", response_model=list[TicketResponse])
async def active_queue(service: TicketServiceDep, _: AgentUser) -> list[TicketResponse]:
    tickets = await service.active_queue()
    return [_to_response(ticket, service) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, user: ViewerUser) -> TicketResponse:
    ticket = await _visible_ticket(service, ticket_id, user)
    return _to_response(ticket, service)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    user: AgentUser,
) -> TicketResponse:
    patch = payload.to_patch()
    try:
        if payload.expected_version is None:
            ticket = await service.update_ticket(ticket_id, patch, actor=user.user_id)
        else:
            current = await service.get_ticket(ticket_id)
            if current.version != payload.expected_version:
                raise ConflictError(ticket_id, payload.expected_version)
            ticket = await service.save_update(current, patch, actor=user.user_id)
    except TicketError as exc:
        raise http_error(exc) from exc
    return _to_response(ticket, service)


@router.delete(
    "/{ticket_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={502: {"model": DeletionResponse}},
)
async def delete_ticket(ticket_id: str, service: TicketServiceDep, user: AdminUser) -> Response:
    try:
        result = await service.delete_ticket(ticket_id, actor=user.user_id)
    except TicketError as exc:
        raise http_error(exc) from exc
    if not result.complete:
        return JSONResponse(status_code=502, content=_to_deletion_response(result).model_dump())
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{ticket_id}/release", response_model=DeletionResponse)
async def release_attachments(
    ticket_id: str,
    payload: ReleaseRequest,
    service: TicketServiceDep,
    _: AdminUser,
) -> DeletionResponse:
    try:
        result = await service.release_attachments(ticket_id, payload.references)
    except TicketError as exc:
        raise http_error(exc) from exc
    return _to_deletion_response(result)


@router.get("/{ticket_id}/attachments", response_model=dict[str, str])
async def list_attachments(ticket_id: str, service: TicketServiceDep, user: ViewerUser) -> dict[str, str]:
    await _visible_ticket(service, ticket_id, user)
    try:
        return await service.attachment_urls(ticket_id)
    except TicketError as exc:
        raise http_error(exc) from exc


@router.post("/{ticket_id}/attachments", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    ticket_id: str,
    service: TicketServiceDep,
    user: ViewerUser,
    file: UploadFile = File(...),
) -> TicketResponse:
    await _visible_ticket(service, ticket_id, user)
    content = await file.read()
    try:
        ticket = await service.add_attachment(
            ticket_id,
            filename=file.filename or "",
            content=content,
            content_type=file.content_type,
            actor=user.user_id,
        )
    except TicketError as exc:
        raise http_error(exc) from exc
    return _to_response(ticket, service)


@router.delete("/{ticket_id}/attachments", response_model=TicketResponse)
async def remove_attachment(
    ticket_id: str,
    service: TicketServiceDep,
    user: AgentUser,
    path: str = Query(..., min_length=1),
) -> TicketResponse:
    try:
        ticket = await service.remove_attachment(ticket_id, path, actor=user.user_id)
    except TicketError as exc:
        raise http_error(exc) from exc
    return _to_response(ticket, service)
