"""
Tickets Application Layer
=========================

Application layer for the tickets module.

Contains:
- Services: TicketEngine and its SLA / assignment resolvers
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from msp_desk.tickets.application.dto import (
    CreateTicketRequest,
    CreateMessageRequest,
    UpdateStatusRequest,
    CreateTimeLogRequest,
    CreateSatisfactionRequest,
    TicketResponse,
    MessageResponse,
    TimeLogResponse,
    SatisfactionResponse,
    ClosedTicketSatisfactionResponse,
    HealthResponse,
)
from msp_desk.tickets.application.services import (
    TicketEngine,
    SLAResolver,
    AssignmentResolver,
    ITicketRepository,
    ICatalogRepository,
    ISLAConfigProvider,
)

__all__ = [
    # DTOs
    "CreateTicketRequest",
    "CreateMessageRequest",
    "UpdateStatusRequest",
    "CreateTimeLogRequest",
    "CreateSatisfactionRequest",
    "TicketResponse",
    "MessageResponse",
    "TimeLogResponse",
    "SatisfactionResponse",
    "ClosedTicketSatisfactionResponse",
    "HealthResponse",
    # Services
    "TicketEngine",
    "SLAResolver",
    "AssignmentResolver",
    # Repository Interfaces
    "ITicketRepository",
    "ICatalogRepository",
    "ISLAConfigProvider",
]
