"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the company, expert and admin ticket surfaces.

Controllers are thin - they resolve the caller's `Actor` and delegate to
the `TicketEngine`. All three routers share the same engine; only the
role of the actor differs.
"""

from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from msp_desk.config import TicketStatus, settings
from msp_desk.core import Actor
from msp_desk.infrastructure.database import get_session
from msp_desk.shared.api.identity import get_admin_actor, get_company_actor, get_expert_actor
from msp_desk.shared.infrastructure.logging import get_logger
from msp_desk.tickets.application import (
    ClosedTicketSatisfactionResponse,
    CreateMessageRequest,
    CreateSatisfactionRequest,
    CreateTicketRequest,
    CreateTimeLogRequest,
    MessageResponse,
    SatisfactionResponse,
    TicketEngine,
    TicketResponse,
    TimeLogResponse,
    UpdateStatusRequest,
)
from msp_desk.tickets.infrastructure import (
    SQLAlchemyCatalogRepository,
    SQLAlchemyTicketRepository,
    YAMLConfigProvider,
)

logger = get_logger(__name__)

company_router = APIRouter(prefix="/company/tickets", tags=["Company Tickets"])
expert_router = APIRouter(prefix="/expert/tickets", tags=["Expert Tickets"])
admin_router = APIRouter(prefix="/admin/tickets", tags=["Admin Tickets"])


# ========== Dependencies ==========

@lru_cache()
def get_sla_config_provider() -> YAMLConfigProvider:
    """SLA defaults are loaded once per process."""
    return YAMLConfigProvider(settings.sla_config_path)


async def get_ticket_engine(
    session: AsyncSession = Depends(get_session)
) -> TicketEngine:
    """Get ticket engine bound to the request's unit of work."""
    return TicketEngine(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyCatalogRepository(session),
        get_sla_config_provider(),
    )


# ========== Company routes ==========

@company_router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a ticket",
    description="""
    Open a ticket against a contracted service and/or a company asset.

    **SLA**: targets come from the system default, the service default and
    the active contract override, and are snapshotted on the ticket.

    **Assignment**: the asset's primary expert, else the company's primary
    linked expert, else unassigned.
    """
)
async def create_ticket(
    request: CreateTicketRequest,
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    ticket = await engine.create_ticket(
        actor,
        title=request.title,
        description=request.description,
        service_id=request.service_id,
        asset_id=request.asset_id,
    )
    return TicketResponse.from_domain(ticket)


@company_router.get("", response_model=List[TicketResponse], summary="List the company's tickets")
async def company_list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[TicketResponse]:
    tickets = await engine.list_tickets(actor, status=status_filter)
    return [TicketResponse.from_domain(t) for t in tickets]


@company_router.get(
    "/satisfaction",
    response_model=List[ClosedTicketSatisfactionResponse],
    summary="Closed tickets with their satisfaction surveys",
    description="Closed tickets, most recently closed first; `satisfaction` is null until submitted."
)
async def company_list_satisfaction(
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[ClosedTicketSatisfactionResponse]:
    rows = await engine.list_closed_ticket_satisfaction(actor)
    return [ClosedTicketSatisfactionResponse.from_domain(ticket, survey) for ticket, survey in rows]


@company_router.get("/{ticket_id}", response_model=TicketResponse, summary="Get ticket")
async def company_get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    return TicketResponse.from_domain(await engine.get_ticket(actor, ticket_id))


@company_router.get(
    "/{ticket_id}/messages",
    response_model=List[MessageResponse],
    summary="List messages (internal notes hidden)"
)
async def company_list_messages(
    ticket_id: str,
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[MessageResponse]:
    messages = await engine.list_messages(actor, ticket_id)
    return [MessageResponse.from_domain(m) for m in messages]


@company_router.post(
    "/{ticket_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message"
)
async def company_add_message(
    ticket_id: str,
    request: CreateMessageRequest,
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> MessageResponse:
    message = await engine.add_message(actor, ticket_id, request.body, request.is_internal)
    return MessageResponse.from_domain(message)


@company_router.patch(
    "/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Close a resolved ticket"
)
async def company_change_status(
    ticket_id: str,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    ticket = await engine.change_status(actor, ticket_id, request.status)
    return TicketResponse.from_domain(ticket)


@company_router.post(
    "/{ticket_id}/satisfaction",
    response_model=SatisfactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit satisfaction survey",
    description="Allowed once per ticket, and only after the ticket is closed."
)
async def submit_satisfaction(
    ticket_id: str,
    request: CreateSatisfactionRequest,
    actor: Actor = Depends(get_company_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> SatisfactionResponse:
    satisfaction = await engine.submit_satisfaction(
        actor,
        ticket_id,
        rating=request.rating,
        response_time_rating=request.response_time_rating,
        resolution_quality_rating=request.resolution_quality_rating,
        communication_rating=request.communication_rating,
        comment=request.comment,
    )
    return SatisfactionResponse.from_domain(satisfaction)


# ========== Expert routes ==========

@expert_router.get("", response_model=List[TicketResponse], summary="List assigned tickets")
async def expert_list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[TicketResponse]:
    tickets = await engine.list_tickets(actor, status=status_filter)
    return [TicketResponse.from_domain(t) for t in tickets]


@expert_router.get("/{ticket_id}", response_model=TicketResponse, summary="Get assigned ticket")
async def expert_get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    return TicketResponse.from_domain(await engine.get_ticket(actor, ticket_id))


@expert_router.get("/{ticket_id}/messages", response_model=List[MessageResponse], summary="List messages")
async def expert_list_messages(
    ticket_id: str,
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[MessageResponse]:
    messages = await engine.list_messages(actor, ticket_id)
    return [MessageResponse.from_domain(m) for m in messages]


@expert_router.post(
    "/{ticket_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message or internal note",
    description="The first expert or admin message records the ticket's first response."
)
async def expert_add_message(
    ticket_id: str,
    request: CreateMessageRequest,
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> MessageResponse:
    message = await engine.add_message(actor, ticket_id, request.body, request.is_internal)
    return MessageResponse.from_domain(message)


@expert_router.get("/{ticket_id}/timelogs", response_model=List[TimeLogResponse], summary="List time logs")
async def expert_list_time_logs(
    ticket_id: str,
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[TimeLogResponse]:
    time_logs = await engine.list_time_logs(actor, ticket_id)
    return [TimeLogResponse.from_domain(t) for t in time_logs]


@expert_router.post(
    "/{ticket_id}/timelogs",
    response_model=TimeLogResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Log time"
)
async def expert_log_time(
    ticket_id: str,
    request: CreateTimeLogRequest,
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TimeLogResponse:
    time_log = await engine.log_time(actor, ticket_id, request.minutes, request.work_type)
    return TimeLogResponse.from_domain(time_log)


@expert_router.patch("/{ticket_id}/status", response_model=TicketResponse, summary="Change status")
async def expert_change_status(
    ticket_id: str,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_expert_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    ticket = await engine.change_status(actor, ticket_id, request.status)
    return TicketResponse.from_domain(ticket)


# ========== Admin routes ==========

@admin_router.get("", response_model=List[TicketResponse], summary="List all tickets")
async def admin_list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[TicketResponse]:
    tickets = await engine.list_tickets(actor, status=status_filter)
    return [TicketResponse.from_domain(t) for t in tickets]


@admin_router.get("/{ticket_id}", response_model=TicketResponse, summary="Get any ticket")
async def admin_get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    return TicketResponse.from_domain(await engine.get_ticket(actor, ticket_id))


@admin_router.get("/{ticket_id}/messages", response_model=List[MessageResponse], summary="List messages")
async def admin_list_messages(
    ticket_id: str,
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[MessageResponse]:
    messages = await engine.list_messages(actor, ticket_id)
    return [MessageResponse.from_domain(m) for m in messages]


@admin_router.post(
    "/{ticket_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message or internal note"
)
async def admin_add_message(
    ticket_id: str,
    request: CreateMessageRequest,
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> MessageResponse:
    message = await engine.add_message(actor, ticket_id, request.body, request.is_internal)
    return MessageResponse.from_domain(message)


@admin_router.get("/{ticket_id}/timelogs", response_model=List[TimeLogResponse], summary="List time logs")
async def admin_list_time_logs(
    ticket_id: str,
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> List[TimeLogResponse]:
    time_logs = await engine.list_time_logs(actor, ticket_id)
    return [TimeLogResponse.from_domain(t) for t in time_logs]


@admin_router.patch("/{ticket_id}/status", response_model=TicketResponse, summary="Change status")
async def admin_change_status(
    ticket_id: str,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    ticket = await engine.change_status(actor, ticket_id, request.status)
    return TicketResponse.from_domain(ticket)


@admin_router.post(
    "/{ticket_id}/assign/{expert_user_id}",
    response_model=TicketResponse,
    summary="Assign an expert",
    description="The expert must be approved and linked to the ticket's company."
)
async def assign_expert(
    ticket_id: str,
    expert_user_id: str,
    actor: Actor = Depends(get_admin_actor),
    engine: TicketEngine = Depends(get_ticket_engine)
) -> TicketResponse:
    ticket = await engine.assign_expert(actor, ticket_id, expert_user_id)
    return TicketResponse.from_domain(ticket)
