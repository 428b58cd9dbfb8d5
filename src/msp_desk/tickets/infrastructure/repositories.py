"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Every read goes through `_live()`, so
soft-deleted rows never reach the engine.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union
from uuid import UUID

import yaml
from pydantic import ValidationError
from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from msp_desk.config import ActorRole, TicketStatus, WorkType, settings
from msp_desk.core import (
    ConfigurationException,
    ConflictException,
    RepositoryException,
    ValidationException,
)
from msp_desk.infrastructure.database import Base
from msp_desk.shared.infrastructure.logging import get_logger
from msp_desk.tickets.application.services import (
    ICatalogRepository,
    ISLAConfigProvider,
    ITicketRepository,
)
from msp_desk.tickets.domain import (
    Asset,
    CompanyExpertLink,
    CompanyProfile,
    Contract,
    ContractService,
    ExpertProfile,
    ServiceCatalogItem,
    SLADefaults,
    Ticket,
    TicketMessage,
    TicketSatisfaction,
    TicketTimeLog,
)
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

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def _live(model: Type[ModelT]) -> Select:
    """Select only rows that have not been soft-deleted."""
    return select(model).where(model.is_deleted == False)  # noqa: E712


def _to_uuid(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Drivers without timezone support hand back naive UTC datetimes."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of tickets and their append-only records.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: str) -> Optional[TicketModel]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = _live(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: TicketModel) -> Ticket:
        return Ticket(
            id=str(model.id),
            company_profile_id=str(model.company_profile_id),
            title=model.title,
            description=model.description,
            status=TicketStatus(model.status),
            sla_first_response_minutes=model.sla_first_response_minutes,
            sla_resolution_minutes=model.sla_resolution_minutes,
            first_response_due_at=_aware(model.first_response_due_at),
            resolution_due_at=_aware(model.resolution_due_at),
            created_at=_aware(model.created_at),
            service_id=_str(model.service_id),
            asset_id=_str(model.asset_id),
            assigned_expert_profile_id=_str(model.assigned_expert_profile_id),
            first_response_at=_aware(model.first_response_at),
            resolved_at=_aware(model.resolved_at),
            closed_at=_aware(model.closed_at),
            first_response_breached=model.first_response_breached,
            resolution_breached=model.resolution_breached,
            version=model.version_id,
        )

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        model = await self._get_model(ticket_id)
        return self._to_domain(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=UUID(ticket.id),
            company_profile_id=UUID(ticket.company_profile_id),
            service_id=_to_uuid(ticket.service_id),
            asset_id=_to_uuid(ticket.asset_id),
            assigned_expert_profile_id=_to_uuid(ticket.assigned_expert_profile_id),
            title=ticket.title,
            description=ticket.description,
            status=ticket.status.value,
            sla_first_response_minutes=ticket.sla_first_response_minutes,
            sla_resolution_minutes=ticket.sla_resolution_minutes,
            first_response_due_at=ticket.first_response_due_at,
            resolution_due_at=ticket.resolution_due_at,
            created_at=ticket.created_at,
            first_response_breached=ticket.first_response_breached,
            resolution_breached=ticket.resolution_breached,
        )

        self._session.add(model)
        await self._session.flush()

        return ticket

    async def update(self, ticket: Ticket) -> Ticket:
        model = await self._get_model(ticket.id)
        if not model:
            raise RepositoryException(f"Ticket {ticket.id} not found")

        if model.version_id != ticket.version:
            raise ConflictException(
                "Ticket was modified by another request.",
                details={"ticket_id": ticket.id, "version": ticket.version}
            )

        # SLA snapshot columns are never rewritten
        changes = {
            "status": ticket.status.value,
            "assigned_expert_profile_id": _to_uuid(ticket.assigned_expert_profile_id),
            "first_response_at": ticket.first_response_at,
            "resolved_at": ticket.resolved_at,
            "closed_at": ticket.closed_at,
            "first_response_breached": ticket.first_response_breached,
            "resolution_breached": ticket.resolution_breached,
        }
        for column, value in changes.items():
            current = getattr(model, column)
            if isinstance(current, datetime):
                current = _aware(current)
            if current != value:
                setattr(model, column, value)

        try:
            await self._session.flush()
        except StaleDataError as e:
            raise ConflictException(
                "Ticket was modified by another request.",
                details={"ticket_id": ticket.id, "version": ticket.version}
            ) from e

        ticket.version = model.version_id
        return ticket

    async def list_tickets(
        self,
        company_profile_id: Optional[str] = None,
        assigned_expert_profile_id: Optional[str] = None,
        status: Optional[TicketStatus] = None
    ) -> List[Ticket]:
        stmt = _live(TicketModel)
        if company_profile_id is not None:
            company_uuid = _to_uuid(company_profile_id)
            if company_uuid is None:
                return []
            stmt = stmt.where(TicketModel.company_profile_id == company_uuid)
        if assigned_expert_profile_id is not None:
            expert_uuid = _to_uuid(assigned_expert_profile_id)
            if expert_uuid is None:
                return []
            stmt = stmt.where(TicketModel.assigned_expert_profile_id == expert_uuid)
        if status is not None:
            stmt = stmt.where(TicketModel.status == status.value)
        stmt = stmt.order_by(TicketModel.created_at.desc())

        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def add_message(self, message: TicketMessage) -> TicketMessage:
        self._session.add(TicketMessageModel(
            id=UUID(message.id),
            ticket_id=UUID(message.ticket_id),
            author_user_id=message.author_user_id,
            author_role=message.author_role.value,
            body=message.body,
            is_internal=message.is_internal,
            created_at=message.created_at,
        ))
        await self._session.flush()
        return message

    async def list_messages(self, ticket_id: str, include_internal: bool) -> List[TicketMessage]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = _live(TicketMessageModel).where(TicketMessageModel.ticket_id == ticket_uuid)
        if not include_internal:
            stmt = stmt.where(TicketMessageModel.is_internal == False)  # noqa: E712
        stmt = stmt.order_by(TicketMessageModel.created_at.asc())

        result = await self._session.execute(stmt)
        return [
            TicketMessage(
                id=str(model.id),
                ticket_id=str(model.ticket_id),
                author_user_id=model.author_user_id,
                author_role=ActorRole(model.author_role),
                body=model.body,
                is_internal=model.is_internal,
                created_at=_aware(model.created_at),
            )
            for model in result.scalars().all()
        ]

    async def add_time_log(self, time_log: TicketTimeLog) -> TicketTimeLog:
        self._session.add(TicketTimeLogModel(
            id=UUID(time_log.id),
            ticket_id=UUID(time_log.ticket_id),
            expert_profile_id=UUID(time_log.expert_profile_id),
            minutes=time_log.minutes,
            work_type=time_log.work_type.value,
            logged_at=time_log.logged_at,
        ))
        await self._session.flush()
        return time_log

    async def list_time_logs(self, ticket_id: str) -> List[TicketTimeLog]:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return []

        stmt = (
            _live(TicketTimeLogModel)
            .where(TicketTimeLogModel.ticket_id == ticket_uuid)
            .order_by(TicketTimeLogModel.logged_at.desc())
        )
        result = await self._session.execute(stmt)
        return [
            TicketTimeLog(
                id=str(model.id),
                ticket_id=str(model.ticket_id),
                expert_profile_id=str(model.expert_profile_id),
                minutes=model.minutes,
                work_type=WorkType(model.work_type),
                logged_at=_aware(model.logged_at),
            )
            for model in result.scalars().all()
        ]

    async def satisfaction_exists(self, ticket_id: str) -> bool:
        ticket_uuid = _to_uuid(ticket_id)
        if ticket_uuid is None:
            return False

        stmt = _live(TicketSatisfactionModel).where(TicketSatisfactionModel.ticket_id == ticket_uuid)
        result = await self._session.execute(stmt.with_only_columns(TicketSatisfactionModel.id))
        return result.scalar_one_or_none() is not None

    async def add_satisfaction(self, satisfaction: TicketSatisfaction) -> TicketSatisfaction:
        model = TicketSatisfactionModel(
            id=UUID(satisfaction.id),
            ticket_id=UUID(satisfaction.ticket_id),
            company_profile_id=UUID(satisfaction.company_profile_id),
            rating=satisfaction.rating,
            response_time_rating=satisfaction.response_time_rating,
            resolution_quality_rating=satisfaction.resolution_quality_rating,
            communication_rating=satisfaction.communication_rating,
            comment=satisfaction.comment,
            created_at=satisfaction.created_at,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            # Lost a race with another submission for the same ticket
            raise ValidationException.for_field(
                "ticket_id", "Satisfaction has already been submitted."
            ) from e
        return satisfaction

    async def list_satisfactions(self, ticket_ids: List[str]) -> List[TicketSatisfaction]:
        ticket_uuids = [u for u in (_to_uuid(t) for t in ticket_ids) if u is not None]
        if not ticket_uuids:
            return []

        stmt = _live(TicketSatisfactionModel).where(TicketSatisfactionModel.ticket_id.in_(ticket_uuids))
        result = await self._session.execute(stmt)
        return [
            TicketSatisfaction(
                id=str(model.id),
                ticket_id=str(model.ticket_id),
                company_profile_id=str(model.company_profile_id),
                rating=model.rating,
                response_time_rating=model.response_time_rating,
                resolution_quality_rating=model.resolution_quality_rating,
                communication_rating=model.communication_rating,
                comment=model.comment,
                created_at=_aware(model.created_at),
            )
            for model in result.scalars().all()
        ]


class SQLAlchemyCatalogRepository(ICatalogRepository):
    """Read-only access to services, contracts, assets and profiles."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _first(self, stmt: Select):
        result = await self._session.execute(stmt.limit(1))
        return result.scalars().first()

    async def get_service(self, service_id: str) -> Optional[ServiceCatalogItem]:
        service_uuid = _to_uuid(service_id)
        if service_uuid is None:
            return None

        model = await self._first(_live(ServiceCatalogItemModel).where(ServiceCatalogItemModel.id == service_uuid))
        if model is None:
            return None
        return ServiceCatalogItem(
            id=str(model.id),
            name=model.name,
            default_first_response_minutes=model.default_first_response_minutes,
            default_resolution_minutes=model.default_resolution_minutes,
            is_active=model.is_active,
        )

    async def get_asset(self, asset_id: str) -> Optional[Asset]:
        asset_uuid = _to_uuid(asset_id)
        if asset_uuid is None:
            return None

        model = await self._first(_live(AssetModel).where(AssetModel.id == asset_uuid))
        if model is None:
            return None
        return Asset(
            id=str(model.id),
            company_profile_id=str(model.company_profile_id),
            name=model.name,
            primary_expert_profile_id=_str(model.primary_expert_profile_id),
        )

    async def get_active_contract(self, company_profile_id: str) -> Optional[Contract]:
        company_uuid = _to_uuid(company_profile_id)
        if company_uuid is None:
            return None

        stmt = _live(ContractModel).where(
            ContractModel.company_profile_id == company_uuid,
            ContractModel.is_active == True,  # noqa: E712
        )
        model = await self._first(stmt)
        if model is None:
            return None
        return Contract(id=str(model.id), company_profile_id=str(model.company_profile_id), is_active=True)

    async def get_contract_service(self, contract_id: str, service_id: str) -> Optional[ContractService]:
        contract_uuid = _to_uuid(contract_id)
        service_uuid = _to_uuid(service_id)
        if contract_uuid is None or service_uuid is None:
            return None

        stmt = _live(ContractServiceModel).where(
            ContractServiceModel.contract_id == contract_uuid,
            ContractServiceModel.service_id == service_uuid,
        )
        model = await self._first(stmt)
        if model is None:
            return None
        return ContractService(
            id=str(model.id),
            contract_id=str(model.contract_id),
            service_id=str(model.service_id),
            custom_first_response_minutes=model.custom_first_response_minutes,
            custom_resolution_minutes=model.custom_resolution_minutes,
        )

    @staticmethod
    def _expert(model: Optional[ExpertProfileModel]) -> Optional[ExpertProfile]:
        if model is None:
            return None
        return ExpertProfile(
            id=str(model.id),
            user_id=model.user_id,
            full_name=model.full_name,
            is_approved=model.is_approved,
        )

    async def get_expert(self, expert_profile_id: str) -> Optional[ExpertProfile]:
        expert_uuid = _to_uuid(expert_profile_id)
        if expert_uuid is None:
            return None
        return self._expert(await self._first(_live(ExpertProfileModel).where(ExpertProfileModel.id == expert_uuid)))

    async def get_expert_by_user_id(self, user_id: str) -> Optional[ExpertProfile]:
        return self._expert(await self._first(_live(ExpertProfileModel).where(ExpertProfileModel.user_id == user_id)))

    async def get_company_by_user_id(self, user_id: str) -> Optional[CompanyProfile]:
        model = await self._first(_live(CompanyProfileModel).where(CompanyProfileModel.user_id == user_id))
        if model is None:
            return None
        return CompanyProfile(id=str(model.id), user_id=model.user_id, company_name=model.company_name)

    async def is_expert_linked(self, company_profile_id: str, expert_profile_id: str) -> bool:
        company_uuid = _to_uuid(company_profile_id)
        expert_uuid = _to_uuid(expert_profile_id)
        if company_uuid is None or expert_uuid is None:
            return False

        stmt = _live(CompanyExpertLinkModel).where(
            CompanyExpertLinkModel.company_profile_id == company_uuid,
            CompanyExpertLinkModel.expert_profile_id == expert_uuid,
        )
        return await self._first(stmt) is not None

    async def get_primary_expert_link(self, company_profile_id: str) -> Optional[CompanyExpertLink]:
        company_uuid = _to_uuid(company_profile_id)
        if company_uuid is None:
            return None

        stmt = _live(CompanyExpertLinkModel).where(
            CompanyExpertLinkModel.company_profile_id == company_uuid,
            CompanyExpertLinkModel.is_primary == True,  # noqa: E712
        )
        model = await self._first(stmt)
        if model is None:
            return None
        return CompanyExpertLink(
            id=str(model.id),
            company_profile_id=str(model.company_profile_id),
            expert_profile_id=str(model.expert_profile_id),
            is_primary=True,
        )


class YAMLConfigProvider(ISLAConfigProvider):
    """
    SLA defaults provider that loads from YAML.

    A missing file falls back to the environment settings; a malformed one
    is a configuration error.

    Example file:

        sla_defaults:
          first_response_minutes: 60
          resolution_minutes: 480
    """

    def __init__(self, config_path: Union[str, Path], fallback: Optional[SLADefaults] = None):
        self._config_path = Path(config_path)
        self._fallback = fallback or SLADefaults(
            first_response_minutes=settings.sla_default_first_response_minutes,
            resolution_minutes=settings.sla_default_resolution_minutes,
        )
        self._defaults: Optional[SLADefaults] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            logger.info(
                "SLA config file not found, using environment defaults",
                extra={"config_path": str(self._config_path)}
            )
            self._defaults = self._fallback
            return

        try:
            with open(self._config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(
                f"Invalid SLA config file: {self._config_path}",
                details={"error": str(e)}
            )

        section = data.get("sla_defaults") if isinstance(data, dict) else None
        if section is None:
            self._defaults = self._fallback
            return

        try:
            self._defaults = SLADefaults(**{
                "first_response_minutes": self._fallback.first_response_minutes,
                "resolution_minutes": self._fallback.resolution_minutes,
                **section,
            })
        except (TypeError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid SLA defaults in {self._config_path}",
                details={"error": str(e)}
            )

        logger.info(
            "SLA defaults loaded",
            extra={
                "config_path": str(self._config_path),
                "first_response_minutes": self._defaults.first_response_minutes,
                "resolution_minutes": self._defaults.resolution_minutes,
            }
        )

    def get_defaults(self) -> SLADefaults:
        """Get current SLA defaults."""
        return self._defaults

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()
