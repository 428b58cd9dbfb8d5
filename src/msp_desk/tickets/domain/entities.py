"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from msp_desk.config import ActorRole, TicketStatus, WorkType
from msp_desk.tickets.domain.value_objects import SLACalculator, SLAMinutes


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Ticket:
    """
    Ticket entity representing a support ticket.

    SLA minutes and due dates are snapshotted at creation and never
    recomputed. Breach flags only ever go from False to True.
    """

    # Core attributes
    id: str
    company_profile_id: str
    title: str
    description: str
    status: TicketStatus

    # SLA snapshot
    sla_first_response_minutes: int
    sla_resolution_minutes: int
    first_response_due_at: datetime
    resolution_due_at: datetime

    created_at: datetime

    # References
    service_id: Optional[str] = None
    asset_id: Optional[str] = None
    assigned_expert_profile_id: Optional[str] = None

    # Progress timestamps, each set once
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    # Breach flags
    first_response_breached: bool = False
    resolution_breached: bool = False

    # Row version the ticket was read at; a stale copy cannot be persisted
    version: int = 1

    @classmethod
    def open(
        cls,
        company_profile_id: str,
        title: str,
        description: str,
        sla: SLAMinutes,
        created_at: datetime,
        service_id: Optional[str] = None,
        asset_id: Optional[str] = None,
        assigned_expert_profile_id: Optional[str] = None
    ) -> "Ticket":
        """Create a new open ticket with its SLA snapshot."""
        return cls(
            id=new_id(),
            company_profile_id=company_profile_id,
            title=title,
            description=description,
            status=TicketStatus.OPEN,
            sla_first_response_minutes=sla.first_response,
            sla_resolution_minutes=sla.resolution,
            first_response_due_at=SLACalculator.calculate_deadline(created_at, sla.first_response),
            resolution_due_at=SLACalculator.calculate_deadline(created_at, sla.resolution),
            created_at=created_at,
            service_id=service_id,
            asset_id=asset_id,
            assigned_expert_profile_id=assigned_expert_profile_id,
        )

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED

    def mark_first_response(self, timestamp: datetime) -> bool:
        """
        Record the first response and evaluate its SLA.

        Returns:
            True if this call set the first response, False if one was already recorded
        """
        if self.first_response_at is not None:
            return False
        self.first_response_at = timestamp
        if SLACalculator.is_breached(timestamp, self.first_response_due_at):
            self.first_response_breached = True
        return True

    def apply_status(self, status: TicketStatus, timestamp: datetime) -> None:
        """
        Write a status that the workflow has already accepted, with its side effects.

        Resolution breach is a point-in-time check at the moment of resolving.
        """
        self.status = status
        if status == TicketStatus.RESOLVED:
            self.resolved_at = timestamp
            if SLACalculator.is_breached(timestamp, self.resolution_due_at):
                self.resolution_breached = True
        elif status == TicketStatus.CLOSED:
            self.closed_at = timestamp


@dataclass
class TicketMessage:
    """Append-only communication record on a ticket."""
    id: str
    ticket_id: str
    author_user_id: str
    author_role: ActorRole
    body: str
    is_internal: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @property
    def counts_as_response(self) -> bool:
        """Expert and admin replies count as a response; company messages never do."""
        return self.author_role in (ActorRole.EXPERT, ActorRole.ADMIN)


@dataclass
class TicketTimeLog:
    """Minutes worked by an expert on a ticket. Pure accounting."""
    id: str
    ticket_id: str
    expert_profile_id: str
    minutes: int
    work_type: WorkType
    logged_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.minutes <= 0:
            raise ValueError("minutes must be positive")


@dataclass
class TicketSatisfaction:
    """Satisfaction survey; at most one per ticket."""
    id: str
    ticket_id: str
    company_profile_id: str
    rating: int
    response_time_rating: Optional[int] = None
    resolution_quality_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


# ========== Catalog entities (read by the engine) ==========

@dataclass
class ServiceCatalogItem:
    """Contractable service with default SLA targets."""
    id: str
    name: str
    default_first_response_minutes: int
    default_resolution_minutes: int
    is_active: bool = True

    def __post_init__(self):
        if self.default_first_response_minutes <= 0 or self.default_resolution_minutes <= 0:
            raise ValueError("default SLA minutes must be positive")
        if self.default_resolution_minutes < self.default_first_response_minutes:
            raise ValueError("default_resolution_minutes must be >= default_first_response_minutes")

    @property
    def default_sla(self) -> SLAMinutes:
        return SLAMinutes(
            first_response=self.default_first_response_minutes,
            resolution=self.default_resolution_minutes
        )


@dataclass
class Contract:
    id: str
    company_profile_id: str
    is_active: bool = False


@dataclass
class ContractService:
    """Per-contract SLA override for one service; each custom value is optional."""
    id: str
    contract_id: str
    service_id: str
    custom_first_response_minutes: Optional[int] = None
    custom_resolution_minutes: Optional[int] = None

    def __post_init__(self):
        for value in (self.custom_first_response_minutes, self.custom_resolution_minutes):
            if value is not None and value <= 0:
                raise ValueError("custom SLA minutes must be positive")
        if (
            self.custom_first_response_minutes is not None
            and self.custom_resolution_minutes is not None
            and self.custom_resolution_minutes < self.custom_first_response_minutes
        ):
            raise ValueError("custom_resolution_minutes must be >= custom_first_response_minutes")


@dataclass
class CompanyProfile:
    id: str
    user_id: str
    company_name: str


@dataclass
class ExpertProfile:
    id: str
    user_id: str
    full_name: str
    is_approved: bool = False


@dataclass
class CompanyExpertLink:
    id: str
    company_profile_id: str
    expert_profile_id: str
    is_primary: bool = False


@dataclass
class Asset:
    id: str
    company_profile_id: str
    name: str
    primary_expert_profile_id: Optional[str] = None
