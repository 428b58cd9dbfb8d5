"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the tickets module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.

Every table carries the audit columns from `AuditMixin`; rows are never
physically deleted.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from msp_desk.config import TicketStatus
from msp_desk.infrastructure.database import AuditMixin, Base


# ========== Catalog and identity ==========

class CompanyProfileModel(AuditMixin, Base):
    __tablename__ = "company_profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)


class ExpertProfileModel(AuditMixin, Base):
    __tablename__ = "expert_profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CompanyExpertLinkModel(AuditMixin, Base):
    """
    Expert linked to a company.

    At most one live primary link per company.
    """
    __tablename__ = "company_expert_links"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_profile_id: Mapped[UUID] = mapped_column(ForeignKey("company_profiles.id"), nullable=False, index=True)
    expert_profile_id: Mapped[UUID] = mapped_column(ForeignKey("expert_profiles.id"), nullable=False, index=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index(
            "ux_company_expert_links_primary",
            "company_profile_id",
            unique=True,
            postgresql_where=text("is_primary AND NOT is_deleted"),
            sqlite_where=text("is_primary = 1 AND is_deleted = 0"),
        ),
    )


class AssetModel(AuditMixin, Base):
    __tablename__ = "assets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_profile_id: Mapped[UUID] = mapped_column(ForeignKey("company_profiles.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    primary_expert_profile_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("expert_profiles.id"), nullable=True
    )


class ServiceCatalogItemModel(AuditMixin, Base):
    __tablename__ = "service_catalog_items"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    default_first_response_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    default_resolution_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ContractModel(AuditMixin, Base):
    """
    Company contract.

    At most one live active contract per company.
    """
    __tablename__ = "contracts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_profile_id: Mapped[UUID] = mapped_column(ForeignKey("company_profiles.id"), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index(
            "ux_contracts_active",
            "company_profile_id",
            unique=True,
            postgresql_where=text("is_active AND NOT is_deleted"),
            sqlite_where=text("is_active = 1 AND is_deleted = 0"),
        ),
    )


class ContractServiceModel(AuditMixin, Base):
    __tablename__ = "contract_services"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    contract_id: Mapped[UUID] = mapped_column(ForeignKey("contracts.id"), nullable=False, index=True)
    service_id: Mapped[UUID] = mapped_column(ForeignKey("service_catalog_items.id"), nullable=False, index=True)
    custom_first_response_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    custom_resolution_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


# ========== Tickets ==========

class TicketModel(AuditMixin, Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # References
    company_profile_id: Mapped[UUID] = mapped_column(ForeignKey("company_profiles.id"), nullable=False, index=True)
    service_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("service_catalog_items.id"), nullable=True)
    asset_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("assets.id"), nullable=True)
    assigned_expert_profile_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("expert_profiles.id"), nullable=True, index=True
    )

    # Ticket content
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN)

    # SLA snapshot
    sla_first_response_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    sla_resolution_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    first_response_due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolution_due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # SLA tracking
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_response_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Optimistic concurrency: UPDATE ... WHERE version_id = <read version>
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}


class TicketMessageModel(AuditMixin, Base):
    __tablename__ = "ticket_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("tickets.id"), nullable=False, index=True)
    author_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    author_role: Mapped[str] = mapped_column(String(50), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class TicketTimeLogModel(AuditMixin, Base):
    __tablename__ = "ticket_time_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("tickets.id"), nullable=False, index=True)
    expert_profile_id: Mapped[UUID] = mapped_column(ForeignKey("expert_profiles.id"), nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    work_type: Mapped[str] = mapped_column(String(50), nullable=False)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TicketSatisfactionModel(AuditMixin, Base):
    __tablename__ = "ticket_satisfactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # One survey per ticket
    ticket_id: Mapped[UUID] = mapped_column(ForeignKey("tickets.id"), nullable=False, unique=True)
    company_profile_id: Mapped[UUID] = mapped_column(ForeignKey("company_profiles.id"), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    response_time_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_quality_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    communication_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
