"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Business rules stay in the engine; the
request models only reject malformed payloads early.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from msp_desk.config import (
    COMMENT_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    MESSAGE_MAX_LENGTH,
    RATING_MAX,
    RATING_MIN,
    TITLE_MAX_LENGTH,
    ActorRole,
    TicketStatus,
    WorkType,
)
from msp_desk.tickets.domain import (
    Ticket,
    TicketMessage,
    TicketSatisfaction,
    TicketTimeLog,
)


# ========== Request DTOs ==========

class CreateTicketRequest(BaseModel):
    """Request model for opening a ticket."""
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    service_id: Optional[str] = Field(None, description="Service catalog item")
    asset_id: Optional[str] = Field(None, description="Affected company asset")

    @model_validator(mode="after")
    def require_service_or_asset(self) -> "CreateTicketRequest":
        if not self.service_id and not self.asset_id:
            raise ValueError("ServiceId or AssetId is required.")
        return self


class CreateMessageRequest(BaseModel):
    body: str = Field(..., min_length=1, max_length=MESSAGE_MAX_LENGTH)
    is_internal: bool = Field(default=False, description="Hidden from the company")


class UpdateStatusRequest(BaseModel):
    status: TicketStatus = Field(..., description="Requested status")


class CreateTimeLogRequest(BaseModel):
    minutes: int = Field(..., gt=0, description="Minutes worked")
    work_type: WorkType = Field(default=WorkType.REMOTE)


class CreateSatisfactionRequest(BaseModel):
    """Satisfaction survey; sub-ratings are optional."""
    rating: int = Field(..., ge=RATING_MIN, le=RATING_MAX)
    response_time_rating: Optional[int] = Field(None, ge=RATING_MIN, le=RATING_MAX)
    resolution_quality_rating: Optional[int] = Field(None, ge=RATING_MIN, le=RATING_MAX)
    communication_rating: Optional[int] = Field(None, ge=RATING_MIN, le=RATING_MAX)
    comment: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Response model for a ticket with its SLA snapshot."""
    id: str
    company_profile_id: str
    service_id: Optional[str] = None
    asset_id: Optional[str] = None
    assigned_expert_profile_id: Optional[str] = None
    title: str
    description: str
    status: TicketStatus
    created_at: datetime

    # SLA information
    sla_first_response_minutes: int
    sla_resolution_minutes: int
    first_response_due_at: datetime
    resolution_due_at: datetime
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    first_response_breached: bool
    resolution_breached: bool

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            company_profile_id=ticket.company_profile_id,
            service_id=ticket.service_id,
            asset_id=ticket.asset_id,
            assigned_expert_profile_id=ticket.assigned_expert_profile_id,
            title=ticket.title,
            description=ticket.description,
            status=ticket.status,
            created_at=ticket.created_at,
            sla_first_response_minutes=ticket.sla_first_response_minutes,
            sla_resolution_minutes=ticket.sla_resolution_minutes,
            first_response_due_at=ticket.first_response_due_at,
            resolution_due_at=ticket.resolution_due_at,
            first_response_at=ticket.first_response_at,
            resolved_at=ticket.resolved_at,
            closed_at=ticket.closed_at,
            first_response_breached=ticket.first_response_breached,
            resolution_breached=ticket.resolution_breached,
        )


class MessageResponse(BaseModel):
    id: str
    ticket_id: str
    author_user_id: str
    author_role: ActorRole
    body: str
    is_internal: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, message: TicketMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            ticket_id=message.ticket_id,
            author_user_id=message.author_user_id,
            author_role=message.author_role,
            body=message.body,
            is_internal=message.is_internal,
            created_at=message.created_at,
        )


class TimeLogResponse(BaseModel):
    id: str
    ticket_id: str
    expert_profile_id: str
    minutes: int
    work_type: WorkType
    logged_at: datetime

    @classmethod
    def from_domain(cls, time_log: TicketTimeLog) -> "TimeLogResponse":
        return cls(
            id=time_log.id,
            ticket_id=time_log.ticket_id,
            expert_profile_id=time_log.expert_profile_id,
            minutes=time_log.minutes,
            work_type=time_log.work_type,
            logged_at=time_log.logged_at,
        )


class SatisfactionResponse(BaseModel):
    id: str
    ticket_id: str
    company_profile_id: str
    rating: int
    response_time_rating: Optional[int] = None
    resolution_quality_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    comment: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, satisfaction: TicketSatisfaction) -> "SatisfactionResponse":
        return cls(
            id=satisfaction.id,
            ticket_id=satisfaction.ticket_id,
            company_profile_id=satisfaction.company_profile_id,
            rating=satisfaction.rating,
            response_time_rating=satisfaction.response_time_rating,
            resolution_quality_rating=satisfaction.resolution_quality_rating,
            communication_rating=satisfaction.communication_rating,
            comment=satisfaction.comment,
            created_at=satisfaction.created_at,
        )



class ClosedTicketSatisfactionResponse(BaseModel):
    """A closed ticket with its survey, if the company submitted one."""
    ticket_id: str
    title: str
    closed_at: Optional[datetime] = None
    satisfaction: Optional[SatisfactionResponse] = None

    @classmethod
    def from_domain(
        cls,
        ticket: Ticket,
        satisfaction: Optional[TicketSatisfaction]
    ) -> "ClosedTicketSatisfactionResponse":
        return cls(
            ticket_id=ticket.id,
            title=ticket.title,
            closed_at=ticket.closed_at,
            satisfaction=SatisfactionResponse.from_domain(satisfaction) if satisfaction else None,
        )


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    environment: str
    timestamp: datetime
