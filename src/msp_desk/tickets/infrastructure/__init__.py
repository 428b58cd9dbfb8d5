"""
Tickets Infrastructure Layer
============================

Infrastructure implementations for the tickets module:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- Config: YAML-backed system SLA defaults
"""

from msp_desk.tickets.infrastructure.models import (
    AssetModel,
    CompanyExpertLinkModel,
    CompanyProfileModel,
    ContractModel,
    ContractServiceModel,
    ExpertProfileModel,
    ServiceCatalogItemModel,
    TicketMessageModel,
    TicketModel,
    TicketSatisfactionModel,
    TicketTimeLogModel,
)
from msp_desk.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyCatalogRepository,
    YAMLConfigProvider,
)

__all__ = [
    "AssetModel",
    "CompanyExpertLinkModel",
    "CompanyProfileModel",
    "ContractModel",
    "ContractServiceModel",
    "ExpertProfileModel",
    "ServiceCatalogItemModel",
    "TicketMessageModel",
    "TicketModel",
    "TicketSatisfactionModel",
    "TicketTimeLogModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyCatalogRepository",
    "YAMLConfigProvider",
]
