"""
Ticket Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Every mutating operation follows the same shape: load, validate everything,
then mutate and persist through the repositories of one unit of work. A
rejected request never leaves partial writes behind.

Following SOLID principles:
- Single Responsibility: SLA resolution, assignment resolution and the
  ticket workflow each live in their own collaborator
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from msp_desk.config import (
    COMMENT_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    MESSAGE_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    ActorRole,
    SLAType,
    TicketStatus,
    WorkType,
)
from msp_desk.core import (
    Actor,
    ForbiddenException,
    ResourceNotFoundException,
    ValidationException,
)
from msp_desk.shared.infrastructure.logging import get_logger
from msp_desk.tickets.domain import (
    Asset,
    CompanyProfile,
    Contract,
    ContractService,
    CompanyExpertLink,
    ExpertProfile,
    ServiceCatalogItem,
    SLADefaults,
    SLAMinutes,
    Ticket,
    TicketMessage,
    TicketSatisfaction,
    TicketTimeLog,
    TicketWorkflow,
    new_id,
    validate_rating,
)
from msp_desk.tickets.domain.entities import utcnow

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========
#
# Read methods only ever see live rows: soft-deleted rows are excluded by
# every implementation, not by a filter callers have to remember.

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket."""

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        """
        Persist a mutated ticket.

        Raises:
            ConflictException: the stored row moved past `ticket.version`
        """

    @abstractmethod
    async def list_tickets(
        self,
        company_profile_id: Optional[str] = None,
        assigned_expert_profile_id: Optional[str] = None,
        status: Optional[TicketStatus] = None
    ) -> List[Ticket]:
        """Tickets matching every given filter, newest first."""

    @abstractmethod
    async def add_message(self, message: TicketMessage) -> TicketMessage:
        """Append a message."""

    @abstractmethod
    async def list_messages(self, ticket_id: str, include_internal: bool) -> List[TicketMessage]:
        """Messages of a ticket, oldest first."""

    @abstractmethod
    async def add_time_log(self, time_log: TicketTimeLog) -> TicketTimeLog:
        """Append a time log."""

    @abstractmethod
    async def list_time_logs(self, ticket_id: str) -> List[TicketTimeLog]:
        """Time logs of a ticket, newest first."""

    @abstractmethod
    async def satisfaction_exists(self, ticket_id: str) -> bool:
        """Check whether a survey was already submitted for the ticket."""

    @abstractmethod
    async def add_satisfaction(self, satisfaction: TicketSatisfaction) -> TicketSatisfaction:
        """
        Insert a satisfaction survey.

        Raises:
            ValidationException: a survey for the ticket already exists
        """

    @abstractmethod
    async def list_satisfactions(self, ticket_ids: List[str]) -> List[TicketSatisfaction]:
        """Surveys submitted for any of the given tickets."""


class ICatalogRepository(ABC):
    """Interface for the catalog and identity data the engine reads."""

    @abstractmethod
    async def get_service(self, service_id: str) -> Optional[ServiceCatalogItem]:
        """Get service catalog item by ID."""

    @abstractmethod
    async def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Get asset by ID."""

    @abstractmethod
    async def get_active_contract(self, company_profile_id: str) -> Optional[Contract]:
        """Get the company's active contract, if any."""

    @abstractmethod
    async def get_contract_service(self, contract_id: str, service_id: str) -> Optional[ContractService]:
        """Get the contract's override row for a service, if any."""

    @abstractmethod
    async def get_expert(self, expert_profile_id: str) -> Optional[ExpertProfile]:
        """Get expert profile by ID."""

    @abstractmethod
    async def get_expert_by_user_id(self, user_id: str) -> Optional[ExpertProfile]:
        """Get the expert profile owned by a user."""

    @abstractmethod
    async def get_company_by_user_id(self, user_id: str) -> Optional[CompanyProfile]:
        """Get the company profile owned by a user."""

    @abstractmethod
    async def is_expert_linked(self, company_profile_id: str, expert_profile_id: str) -> bool:
        """Check whether an expert is linked to a company."""

    @abstractmethod
    async def get_primary_expert_link(self, company_profile_id: str) -> Optional[CompanyExpertLink]:
        """Get the company's primary expert link, if any."""


class ISLAConfigProvider(ABC):
    """Interface for system-wide SLA defaults."""

    @abstractmethod
    def get_defaults(self) -> SLADefaults:
        """Get current SLA defaults."""


# ========== Resolvers ==========

class SLAResolver:
    """
    Computes the SLA targets snapshotted onto a new ticket.

    System default, then the service default, then any non-null custom value
    from the company's active contract. The two targets are overridden
    independently.
    """

    def __init__(self, catalog: ICatalogRepository, config_provider: ISLAConfigProvider):
        self._catalog = catalog
        self._config_provider = config_provider

    async def resolve(
        self,
        company_profile_id: str,
        service: Optional[ServiceCatalogItem]
    ) -> SLAMinutes:
        minutes = self._config_provider.get_defaults().to_minutes()
        if service is None or not service.is_active:
            return minutes

        minutes = service.default_sla

        contract = await self._catalog.get_active_contract(company_profile_id)
        if contract is None:
            return minutes

        override = await self._catalog.get_contract_service(contract.id, service.id)
        if override is None:
            return minutes

        return minutes.with_overrides(
            first_response=override.custom_first_response_minutes,
            resolution=override.custom_resolution_minutes,
        )


class AssignmentResolver:
    """
    Picks the expert auto-assigned to a new ticket.

    First match wins:
    1. The asset's primary expert, if approved and linked to the company
    2. The company's primary linked expert, if approved
    3. Nobody
    """

    def __init__(self, catalog: ICatalogRepository):
        self._catalog = catalog

    async def resolve(self, company_profile_id: str, asset: Optional[Asset]) -> Optional[str]:
        if asset is not None and asset.primary_expert_profile_id:
            expert = await self._catalog.get_expert(asset.primary_expert_profile_id)
            if expert is not None and expert.is_approved:
                if await self._catalog.is_expert_linked(company_profile_id, expert.id):
                    return expert.id

        link = await self._catalog.get_primary_expert_link(company_profile_id)
        if link is None:
            return None

        expert = await self._catalog.get_expert(link.expert_profile_id)
        if expert is not None and expert.is_approved:
            return expert.id
        return None


# ========== Application Services ==========

class TicketEngine:
    """
    Ticket lifecycle service.

    One role-parameterized implementation serves companies, experts and
    admins; the `Actor` decides which tickets are visible and which
    transitions are allowed.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        catalog_repository: ICatalogRepository,
        config_provider: ISLAConfigProvider,
        clock: Callable[[], datetime] = utcnow
    ):
        self._tickets = ticket_repository
        self._catalog = catalog_repository
        self._sla_resolver = SLAResolver(catalog_repository, config_provider)
        self._assignment_resolver = AssignmentResolver(catalog_repository)
        self._clock = clock

    # ---------- Actor resolution ----------

    async def _company_for(self, actor: Actor) -> CompanyProfile:
        company = await self._catalog.get_company_by_user_id(actor.user_id)
        if company is None:
            raise ResourceNotFoundException("Company profile", details={"user_id": actor.user_id})
        return company

    async def _expert_for(self, actor: Actor) -> ExpertProfile:
        expert = await self._catalog.get_expert_by_user_id(actor.user_id)
        if expert is None:
            raise ResourceNotFoundException("Expert profile", details={"user_id": actor.user_id})
        if not expert.is_approved:
            raise ForbiddenException("Expert approval required.")
        return expert

    async def _ticket_for(self, actor: Actor, ticket_id: str) -> Ticket:
        """Load a ticket visible to the actor; anything else is not found."""
        ticket = await self._tickets.get_by_id(ticket_id)

        if ticket is not None and actor.is_company:
            company = await self._company_for(actor)
            if ticket.company_profile_id != company.id:
                ticket = None
        elif ticket is not None and actor.is_expert:
            expert = await self._expert_for(actor)
            if ticket.assigned_expert_profile_id != expert.id:
                ticket = None

        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    # ---------- Commands ----------

    async def create_ticket(
        self,
        actor: Actor,
        title: str,
        description: str,
        service_id: Optional[str] = None,
        asset_id: Optional[str] = None
    ) -> Ticket:
        """
        Open a ticket on behalf of a company.

        Raises:
            ValidationException: bad title/description, missing or invalid
                service/asset reference
        """
        if not actor.is_company:
            raise ForbiddenException("Only companies can create tickets.")

        company = await self._company_for(actor)

        title = (title or "").strip()
        description = (description or "").strip()
        errors = {}
        if not title or len(title) > TITLE_MAX_LENGTH:
            errors["title"] = [f"Title is required and must be at most {TITLE_MAX_LENGTH} characters."]
        if not description or len(description) > DESCRIPTION_MAX_LENGTH:
            errors["description"] = [
                f"Description is required and must be at most {DESCRIPTION_MAX_LENGTH} characters."
            ]
        if not service_id and not asset_id:
            errors["service_id"] = ["ServiceId or AssetId is required."]
        if errors:
            raise ValidationException("Ticket request is invalid.", errors=errors)

        asset = None
        if asset_id:
            asset = await self._catalog.get_asset(asset_id)
            if asset is None or asset.company_profile_id != company.id:
                raise ValidationException.for_field("asset_id", "Asset is invalid for this company.")

        service = None
        if service_id:
            service = await self._catalog.get_service(service_id)
            if service is None or not service.is_active:
                raise ValidationException.for_field("service_id", "Service is invalid or inactive.")

        sla = await self._sla_resolver.resolve(company.id, service)
        assigned_expert_id = await self._assignment_resolver.resolve(company.id, asset)

        now = self._clock()
        ticket = Ticket.open(
            company_profile_id=company.id,
            title=title,
            description=description,
            sla=sla,
            created_at=now,
            service_id=service.id if service else None,
            asset_id=asset.id if asset else None,
            assigned_expert_profile_id=assigned_expert_id,
        )
        ticket = await self._tickets.create(ticket)

        # The description doubles as the opening message; it never counts as a response.
        await self._tickets.add_message(TicketMessage(
            id=new_id(),
            ticket_id=ticket.id,
            author_user_id=actor.user_id,
            author_role=ActorRole.COMPANY,
            body=description,
            is_internal=False,
            created_at=now,
        ))

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "company_profile_id": company.id,
                "service_id": ticket.service_id,
                "asset_id": ticket.asset_id,
                "assigned_expert_profile_id": assigned_expert_id,
                "sla_first_response_minutes": sla.first_response,
                "sla_resolution_minutes": sla.resolution,
            }
        )
        return ticket

    async def add_message(
        self,
        actor: Actor,
        ticket_id: str,
        body: str,
        is_internal: bool = False
    ) -> TicketMessage:
        """
        Append a message; the first expert/admin message records the first response.

        Raises:
            ValidationException: empty body or closed ticket
        """
        ticket = await self._ticket_for(actor, ticket_id)

        body = (body or "").strip()
        if not body or len(body) > MESSAGE_MAX_LENGTH:
            raise ValidationException.for_field(
                "body", f"Body is required and must be at most {MESSAGE_MAX_LENGTH} characters."
            )
        if ticket.is_closed:
            raise ValidationException.for_field("status", "Ticket is closed.")

        now = self._clock()
        message = TicketMessage(
            id=new_id(),
            ticket_id=ticket.id,
            author_user_id=actor.user_id,
            author_role=actor.role,
            body=body,
            # Companies cannot write internal notes
            is_internal=is_internal and not actor.is_company,
            created_at=now,
        )

        if message.counts_as_response and ticket.mark_first_response(now):
            await self._tickets.update(ticket)
            logger.info(
                "First response recorded",
                extra={
                    "ticket_id": ticket.id,
                    "author_role": actor.role.value,
                    "first_response_breached": ticket.first_response_breached,
                }
            )
            if ticket.first_response_breached:
                logger.warning(
                    "SLA breached",
                    extra={"ticket_id": ticket.id, "sla_type": SLAType.FIRST_RESPONSE.value}
                )

        return await self._tickets.add_message(message)

    async def change_status(
        self,
        actor: Actor,
        ticket_id: str,
        requested_status: TicketStatus
    ) -> Ticket:
        """
        Move a ticket through the workflow.

        Raises:
            ValidationException: transition not in the workflow, or not
                allowed for a company actor
        """
        ticket = await self._ticket_for(actor, ticket_id)
        current = ticket.status

        if actor.is_company and not TicketWorkflow.is_company_transition(current, requested_status):
            raise ValidationException.for_field("status", "Company can only close resolved tickets.")

        if not TicketWorkflow.is_valid_transition(current, requested_status):
            raise ValidationException.for_field(
                "status",
                f"Invalid status transition from '{current.value}' to '{requested_status.value}'."
            )

        ticket.apply_status(requested_status, self._clock())
        ticket = await self._tickets.update(ticket)

        logger.info(
            "Ticket status changed",
            extra={
                "ticket_id": ticket.id,
                "from_status": current.value,
                "to_status": requested_status.value,
                "actor_role": actor.role.value,
            }
        )
        if requested_status == TicketStatus.RESOLVED and ticket.resolution_breached:
            logger.warning(
                "SLA breached",
                extra={"ticket_id": ticket.id, "sla_type": SLAType.RESOLUTION.value}
            )

        return ticket

    async def assign_expert(self, actor: Actor, ticket_id: str, expert_user_id: str) -> Ticket:
        """
        Manually assign an expert (admin only).

        Raises:
            ValidationException: expert missing, unapproved, or not linked
                to the ticket's company
        """
        if not actor.is_admin:
            raise ForbiddenException("Only administrators can assign tickets.")

        ticket = await self._ticket_for(actor, ticket_id)

        expert = await self._catalog.get_expert_by_user_id(expert_user_id)
        if expert is None or not expert.is_approved:
            raise ValidationException.for_field("expert_id", "Expert is not approved or not found.")

        if not await self._catalog.is_expert_linked(ticket.company_profile_id, expert.id):
            raise ValidationException.for_field("expert_id", "Expert is not linked to this company.")

        ticket.assigned_expert_profile_id = expert.id
        ticket = await self._tickets.update(ticket)

        logger.info(
            "Ticket assigned",
            extra={"ticket_id": ticket.id, "expert_profile_id": expert.id}
        )
        return ticket

    async def submit_satisfaction(
        self,
        actor: Actor,
        ticket_id: str,
        rating: int,
        response_time_rating: Optional[int] = None,
        resolution_quality_rating: Optional[int] = None,
        communication_rating: Optional[int] = None,
        comment: Optional[str] = None
    ) -> TicketSatisfaction:
        """
        Record the company's satisfaction survey for a closed ticket.

        Raises:
            ValidationException: rating out of range, ticket not closed, or
                survey already submitted
        """
        if not actor.is_company:
            raise ForbiddenException("Only companies can submit satisfaction surveys.")

        ticket = await self._ticket_for(actor, ticket_id)

        validate_rating("rating", rating, required=True)
        validate_rating("response_time_rating", response_time_rating)
        validate_rating("resolution_quality_rating", resolution_quality_rating)
        validate_rating("communication_rating", communication_rating)

        comment = comment.strip() if comment else None
        if comment and len(comment) > COMMENT_MAX_LENGTH:
            raise ValidationException.for_field(
                "comment", f"Comment must be at most {COMMENT_MAX_LENGTH} characters."
            )

        if ticket.status != TicketStatus.CLOSED:
            raise ValidationException.for_field(
                "status", "Ticket must be closed before submitting satisfaction."
            )

        if await self._tickets.satisfaction_exists(ticket.id):
            raise ValidationException.for_field("ticket_id", "Satisfaction has already been submitted.")

        satisfaction = await self._tickets.add_satisfaction(TicketSatisfaction(
            id=new_id(),
            ticket_id=ticket.id,
            company_profile_id=ticket.company_profile_id,
            rating=rating,
            response_time_rating=response_time_rating,
            resolution_quality_rating=resolution_quality_rating,
            communication_rating=communication_rating,
            comment=comment or None,
            created_at=self._clock(),
        ))

        logger.info(
            "Satisfaction submitted",
            extra={"ticket_id": ticket.id, "rating": rating}
        )
        return satisfaction

    async def log_time(
        self,
        actor: Actor,
        ticket_id: str,
        minutes: int,
        work_type: WorkType
    ) -> TicketTimeLog:
        """Record minutes worked by the acting expert. No SLA interaction."""
        if not actor.is_expert:
            raise ForbiddenException("Only experts can log time.")

        expert = await self._expert_for(actor)
        ticket = await self._ticket_for(actor, ticket_id)

        if minutes is None or minutes <= 0:
            raise ValidationException.for_field("minutes", "Minutes must be greater than 0.")

        return await self._tickets.add_time_log(TicketTimeLog(
            id=new_id(),
            ticket_id=ticket.id,
            expert_profile_id=expert.id,
            minutes=minutes,
            work_type=WorkType(work_type),
            logged_at=self._clock(),
        ))

    # ---------- Queries ----------

    async def get_ticket(self, actor: Actor, ticket_id: str) -> Ticket:
        return await self._ticket_for(actor, ticket_id)

    async def list_tickets(self, actor: Actor, status: Optional[TicketStatus] = None) -> List[Ticket]:
        """
        Tickets visible to the actor, newest first.

        Companies see their own tickets, experts the tickets assigned to
        them, admins everything.
        """
        if actor.is_company:
            company = await self._company_for(actor)
            return await self._tickets.list_tickets(company_profile_id=company.id, status=status)
        if actor.is_expert:
            expert = await self._expert_for(actor)
            return await self._tickets.list_tickets(assigned_expert_profile_id=expert.id, status=status)
        return await self._tickets.list_tickets(status=status)

    async def list_closed_ticket_satisfaction(
        self,
        actor: Actor
    ) -> List[Tuple[Ticket, Optional[TicketSatisfaction]]]:
        """The company's closed tickets, most recently closed first, each with its survey if submitted."""
        if not actor.is_company:
            raise ForbiddenException("Only companies can review their satisfaction surveys.")

        company = await self._company_for(actor)
        tickets = await self._tickets.list_tickets(company_profile_id=company.id, status=TicketStatus.CLOSED)
        tickets.sort(key=lambda t: t.closed_at or t.created_at, reverse=True)

        surveys = {
            s.ticket_id: s
            for s in await self._tickets.list_satisfactions([t.id for t in tickets])
        }
        return [(ticket, surveys.get(ticket.id)) for ticket in tickets]

    async def list_messages(self, actor: Actor, ticket_id: str) -> List[TicketMessage]:
        """Messages visible to the actor; companies never see internal notes."""
        ticket = await self._ticket_for(actor, ticket_id)
        return await self._tickets.list_messages(ticket.id, include_internal=not actor.is_company)

    async def list_time_logs(self, actor: Actor, ticket_id: str) -> List[TicketTimeLog]:
        if actor.is_company:
            raise ForbiddenException("Companies cannot view time logs.")
        ticket = await self._ticket_for(actor, ticket_id)
        return await self._tickets.list_time_logs(ticket.id)
