"""
Tickets Domain Layer
====================

Domain layer for the tickets module.

Contains:
- Entities: Ticket and its append-only records, plus the catalog objects
  the engine reads (services, contracts, assets, experts, companies)
- Value Objects: SLAMinutes, SLADefaults
- Domain Rules: TicketWorkflow, SLACalculator, rating bounds

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from msp_desk.tickets.domain.entities import (
    Ticket,
    TicketMessage,
    TicketTimeLog,
    TicketSatisfaction,
    ServiceCatalogItem,
    Contract,
    ContractService,
    CompanyProfile,
    ExpertProfile,
    CompanyExpertLink,
    Asset,
    new_id,
)
from msp_desk.tickets.domain.value_objects import (
    TicketWorkflow,
    SLAMinutes,
    SLACalculator,
    SLADefaults,
    validate_rating,
)

__all__ = [
    # Entities
    "Ticket",
    "TicketMessage",
    "TicketTimeLog",
    "TicketSatisfaction",
    "ServiceCatalogItem",
    "Contract",
    "ContractService",
    "CompanyProfile",
    "ExpertProfile",
    "CompanyExpertLink",
    "Asset",
    "new_id",
    # Value Objects & Rules
    "TicketWorkflow",
    "SLAMinutes",
    "SLACalculator",
    "SLADefaults",
    "validate_rating",
]
