"""
Shared test fixtures.

The engine runs against in-memory implementations of the repository
interfaces and a controllable clock.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from msp_desk.config import ActorRole, TicketStatus
from msp_desk.core import Actor, ConflictException, ValidationException
from msp_desk.tickets.application import (
    ICatalogRepository,
    ISLAConfigProvider,
    ITicketRepository,
    TicketEngine,
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

T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now = self.now + timedelta(minutes=minutes)


class InMemoryTicketRepository(ITicketRepository):
    def __init__(self):
        self.tickets: Dict[str, Ticket] = {}
        self.messages: List[TicketMessage] = []
        self.time_logs: List[TicketTimeLog] = []
        self.satisfactions: List[TicketSatisfaction] = []
        self.deleted_ticket_ids = set()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        if ticket_id in self.deleted_ticket_ids:
            return None
        ticket = self.tickets.get(ticket_id)
        return replace(ticket) if ticket else None

    async def create(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = replace(ticket)
        return ticket

    async def update(self, ticket: Ticket) -> Ticket:
        if self.tickets[ticket.id].version != ticket.version:
            raise ConflictException("Ticket was modified by another request.")
        ticket.version += 1
        self.tickets[ticket.id] = replace(ticket)
        return ticket

    async def list_tickets(
        self,
        company_profile_id: Optional[str] = None,
        assigned_expert_profile_id: Optional[str] = None,
        status: Optional[TicketStatus] = None
    ) -> List[Ticket]:
        return sorted(
            (replace(t) for t in self.tickets.values()
             if t.id not in self.deleted_ticket_ids
             and company_profile_id in (None, t.company_profile_id)
             and assigned_expert_profile_id in (None, t.assigned_expert_profile_id)
             and status in (None, t.status)),
            key=lambda t: t.created_at,
            reverse=True,
        )

    async def add_message(self, message: TicketMessage) -> TicketMessage:
        self.messages.append(message)
        return message

    async def list_messages(self, ticket_id: str, include_internal: bool) -> List[TicketMessage]:
        return sorted(
            (m for m in self.messages
             if m.ticket_id == ticket_id and (include_internal or not m.is_internal)),
            key=lambda m: m.created_at,
        )

    async def add_time_log(self, time_log: TicketTimeLog) -> TicketTimeLog:
        self.time_logs.append(time_log)
        return time_log

    async def list_time_logs(self, ticket_id: str) -> List[TicketTimeLog]:
        return sorted(
            (t for t in self.time_logs if t.ticket_id == ticket_id),
            key=lambda t: t.logged_at,
            reverse=True,
        )

    async def satisfaction_exists(self, ticket_id: str) -> bool:
        return any(s.ticket_id == ticket_id for s in self.satisfactions)

    async def add_satisfaction(self, satisfaction: TicketSatisfaction) -> TicketSatisfaction:
        if any(s.ticket_id == satisfaction.ticket_id for s in self.satisfactions):
            raise ValidationException.for_field("ticket_id", "Satisfaction has already been submitted.")
        self.satisfactions.append(satisfaction)
        return satisfaction

    async def list_satisfactions(self, ticket_ids: List[str]) -> List[TicketSatisfaction]:
        return [s for s in self.satisfactions if s.ticket_id in ticket_ids]


class InMemoryCatalogRepository(ICatalogRepository):
    def __init__(self):
        self.services: Dict[str, ServiceCatalogItem] = {}
        self.assets: Dict[str, Asset] = {}
        self.contracts: List[Contract] = []
        self.contract_services: List[ContractService] = []
        self.experts: Dict[str, ExpertProfile] = {}
        self.companies: Dict[str, CompanyProfile] = {}
        self.links: List[CompanyExpertLink] = []

    async def get_service(self, service_id: str) -> Optional[ServiceCatalogItem]:
        return self.services.get(service_id)

    async def get_asset(self, asset_id: str) -> Optional[Asset]:
        return self.assets.get(asset_id)

    async def get_active_contract(self, company_profile_id: str) -> Optional[Contract]:
        return next(
            (c for c in self.contracts if c.company_profile_id == company_profile_id and c.is_active),
            None,
        )

    async def get_contract_service(self, contract_id: str, service_id: str) -> Optional[ContractService]:
        return next(
            (cs for cs in self.contract_services
             if cs.contract_id == contract_id and cs.service_id == service_id),
            None,
        )

    async def get_expert(self, expert_profile_id: str) -> Optional[ExpertProfile]:
        return self.experts.get(expert_profile_id)

    async def get_expert_by_user_id(self, user_id: str) -> Optional[ExpertProfile]:
        return next((e for e in self.experts.values() if e.user_id == user_id), None)

    async def get_company_by_user_id(self, user_id: str) -> Optional[CompanyProfile]:
        return next((c for c in self.companies.values() if c.user_id == user_id), None)

    async def is_expert_linked(self, company_profile_id: str, expert_profile_id: str) -> bool:
        return any(
            link.company_profile_id == company_profile_id and link.expert_profile_id == expert_profile_id
            for link in self.links
        )

    async def get_primary_expert_link(self, company_profile_id: str) -> Optional[CompanyExpertLink]:
        return next(
            (link for link in self.links
             if link.company_profile_id == company_profile_id and link.is_primary),
            None,
        )


class StaticConfigProvider(ISLAConfigProvider):
    def __init__(self, defaults: Optional[SLADefaults] = None):
        self.defaults = defaults or SLADefaults()

    def get_defaults(self) -> SLADefaults:
        return self.defaults


# ========== Sample catalog ==========
#
# company-1 (C1): linked to E1 and E2 (E2 primary) and to unapproved E3.
#   Active contract overrides the "network" service's first response (15).
#   Asset A1 has E1 as primary expert.
# company-2 (C2): no links, no contract. Asset A2 has E1 (not linked to C2).

COMPANY_USER = "company-1"
OTHER_COMPANY_USER = "company-2"
EXPERT_USER = "expert-1"
PRIMARY_EXPERT_USER = "expert-2"
UNAPPROVED_EXPERT_USER = "expert-3"
UNLINKED_EXPERT_USER = "expert-4"
ADMIN_USER = "admin-1"


def build_catalog() -> InMemoryCatalogRepository:
    catalog = InMemoryCatalogRepository()

    catalog.companies = {
        "C1": CompanyProfile(id="C1", user_id=COMPANY_USER, company_name="Contoso 01"),
        "C2": CompanyProfile(id="C2", user_id=OTHER_COMPANY_USER, company_name="Contoso 02"),
    }
    catalog.experts = {
        "E1": ExpertProfile(id="E1", user_id=EXPERT_USER, full_name="Expert One", is_approved=True),
        "E2": ExpertProfile(id="E2", user_id=PRIMARY_EXPERT_USER, full_name="Expert Two", is_approved=True),
        "E3": ExpertProfile(id="E3", user_id=UNAPPROVED_EXPERT_USER, full_name="Expert Three", is_approved=False),
        "E4": ExpertProfile(id="E4", user_id=UNLINKED_EXPERT_USER, full_name="Expert Four", is_approved=True),
    }
    catalog.links = [
        CompanyExpertLink(id="L1", company_profile_id="C1", expert_profile_id="E1", is_primary=False),
        CompanyExpertLink(id="L2", company_profile_id="C1", expert_profile_id="E2", is_primary=True),
        CompanyExpertLink(id="L3", company_profile_id="C1", expert_profile_id="E3", is_primary=False),
    ]
    catalog.services = {
        "endpoint": ServiceCatalogItem(
            id="endpoint", name="Managed Endpoint Support",
            default_first_response_minutes=60, default_resolution_minutes=480,
        ),
        "network": ServiceCatalogItem(
            id="network", name="Network Monitoring",
            default_first_response_minutes=30, default_resolution_minutes=240,
        ),
        "retired": ServiceCatalogItem(
            id="retired", name="Fax Support",
            default_first_response_minutes=120, default_resolution_minutes=960, is_active=False,
        ),
    }
    catalog.contracts = [Contract(id="K1", company_profile_id="C1", is_active=True)]
    catalog.contract_services = [
        ContractService(id="KS1", contract_id="K1", service_id="network", custom_first_response_minutes=15),
    ]
    catalog.assets = {
        "A1": Asset(id="A1", company_profile_id="C1", name="File Server", primary_expert_profile_id="E1"),
        "A2": Asset(id="A2", company_profile_id="C2", name="Router", primary_expert_profile_id="E1"),
    }
    return catalog


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> InMemoryCatalogRepository:
    return build_catalog()


@pytest.fixture
def ticket_repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider()


@pytest.fixture
def engine(ticket_repository, catalog, config_provider, clock) -> TicketEngine:
    return TicketEngine(ticket_repository, catalog, config_provider, clock=clock)


@pytest.fixture
def company() -> Actor:
    return Actor(role=ActorRole.COMPANY, user_id=COMPANY_USER)


@pytest.fixture
def other_company() -> Actor:
    return Actor(role=ActorRole.COMPANY, user_id=OTHER_COMPANY_USER)


@pytest.fixture
def expert() -> Actor:
    return Actor(role=ActorRole.EXPERT, user_id=EXPERT_USER)


@pytest.fixture
def primary_expert() -> Actor:
    return Actor(role=ActorRole.EXPERT, user_id=PRIMARY_EXPERT_USER)


@pytest.fixture
def admin() -> Actor:
    return Actor(role=ActorRole.ADMIN, user_id=ADMIN_USER)
