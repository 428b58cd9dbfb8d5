"""
Ticket Value Objects
====================

Immutable value objects and stateless rules for the ticket domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field, model_validator

from msp_desk.config import RATING_MAX, RATING_MIN, TicketStatus
from msp_desk.core import ValidationException


class TicketWorkflow:
    """
    Allowed ticket status transitions.

    Closed is terminal. Same-state requests and skipped states are invalid.
    """

    TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
        TicketStatus.OPEN: frozenset({TicketStatus.IN_PROGRESS}),
        TicketStatus.IN_PROGRESS: frozenset({TicketStatus.WAITING_FOR_CUSTOMER, TicketStatus.RESOLVED}),
        TicketStatus.WAITING_FOR_CUSTOMER: frozenset({TicketStatus.IN_PROGRESS}),
        TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED}),
        TicketStatus.CLOSED: frozenset(),
    }

    @classmethod
    def is_valid_transition(cls, current: TicketStatus, requested: TicketStatus) -> bool:
        return requested in cls.TRANSITIONS.get(current, frozenset())

    @classmethod
    def is_company_transition(cls, current: TicketStatus, requested: TicketStatus) -> bool:
        """Companies may only close a resolved ticket."""
        return current == TicketStatus.RESOLVED and requested == TicketStatus.CLOSED


@dataclass(frozen=True)
class SLAMinutes:
    """Effective SLA targets for one ticket, in minutes."""
    first_response: int
    resolution: int

    def __post_init__(self):
        if self.first_response <= 0 or self.resolution <= 0:
            raise ValueError("SLA minutes must be positive")

    def with_overrides(
        self,
        first_response: Optional[int] = None,
        resolution: Optional[int] = None
    ) -> "SLAMinutes":
        """Replace each target independently; None keeps the current value."""
        return SLAMinutes(
            first_response=first_response if first_response is not None else self.first_response,
            resolution=resolution if resolution is not None else self.resolution,
        )


class SLACalculator:
    """Pure functions for SLA deadline arithmetic."""

    @staticmethod
    def calculate_deadline(created_at: datetime, sla_minutes: int) -> datetime:
        return created_at + timedelta(minutes=sla_minutes)

    @staticmethod
    def is_breached(event_at: datetime, deadline: datetime) -> bool:
        """An event strictly after its deadline breaches the SLA."""
        return event_at > deadline


class SLADefaults(BaseModel):
    """
    System-wide SLA targets used when a ticket references no active service.

    Loaded from YAML, falling back to environment settings.
    """
    first_response_minutes: int = Field(default=60, ge=1, description="First response target")
    resolution_minutes: int = Field(default=480, ge=1, description="Resolution target")

    @model_validator(mode="after")
    def validate_ordering(self) -> "SLADefaults":
        if self.resolution_minutes < self.first_response_minutes:
            raise ValueError("resolution_minutes must be >= first_response_minutes")
        return self

    def to_minutes(self) -> SLAMinutes:
        return SLAMinutes(
            first_response=self.first_response_minutes,
            resolution=self.resolution_minutes
        )


def validate_rating(field: str, value: Optional[int], required: bool = False) -> None:
    """Ratings are bounded 1-5; optional sub-ratings are bounded the same way when present."""
    if value is None:
        if required:
            raise ValidationException.for_field(field, "Rating is required.")
        return
    if not RATING_MIN <= value <= RATING_MAX:
        raise ValidationException.for_field(
            field, f"Rating must be between {RATING_MIN} and {RATING_MAX}."
        )
