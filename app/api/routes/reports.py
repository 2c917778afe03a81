from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.dependencies.tickets import ReportsUser, get_ticket_service
from app.tickets.service import TicketService

router = APIRouter(prefix="/reports", tags=["reports"])


class MonthlySlaResponse(BaseModel):
    month: str
    green: int
    yellow: int
    red: int
    total: int


class ResolutionResponse(BaseModel):
    resolved: int
    unresolved: int
    resolved_ratio: float


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


@router.get("/sla", response_model=list[MonthlySlaResponse])
async def sla_performance(
    service: TicketServiceDep,
    _: ReportsUser,
    months: int = Query(default=3, ge=1, le=24),
) -> list[MonthlySlaResponse]:
    summaries = await service.sla_report(months=months)
    return [
        MonthlySlaResponse(month=item.month, green=item.green, yellow=item.yellow, red=item.red, total=item.total)
        for item in summaries
    ]


@router.get("/resolution", response_model=ResolutionResponse)
async def resolution(
    service: TicketServiceDep,
    _: ReportsUser,
    months: int = Query(default=3, ge=1, le=24),
) -> ResolutionResponse:
    breakdown = await service.resolution_report(months=months)
    return ResolutionResponse(
        resolved=breakdown.resolved,
        unresolved=breakdown.unresolved,
        resolved_ratio=breakdown.resolved_ratio,
    )
