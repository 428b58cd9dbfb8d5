"""Tests for the TicketEngine application service."""

from datetime import timedelta

import pytest

from msp_desk.config import ActorRole, TicketStatus, WorkType
from msp_desk.core import (
    Actor,
    ConflictException,
    ForbiddenException,
    ResourceNotFoundException,
    ValidationException,
)
from msp_desk.tickets.domain import ContractService, ServiceCatalogItem, SLADefaults

from conftest import T0, UNAPPROVED_EXPERT_USER, UNLINKED_EXPERT_USER, EXPERT_USER


async def open_ticket(engine, actor, service_id="endpoint", asset_id=None, title="Printer offline"):
    return await engine.create_ticket(
        actor,
        title=title,
        description="The office printer stopped responding.",
        service_id=service_id,
        asset_id=asset_id,
    )


async def walk_to(engine, actor, ticket_id, *statuses):
    ticket = None
    for status in statuses:
        ticket = await engine.change_status(actor, ticket_id, status)
    return ticket


class TestCreateTicket:

    async def test_snapshots_sla_and_assigns_company_primary(self, engine, company, ticket_repository):
        ticket = await open_ticket(engine, company)

        assert ticket.status == TicketStatus.OPEN
        assert ticket.company_profile_id == "C1"
        assert ticket.sla_first_response_minutes == 60
        assert ticket.sla_resolution_minutes == 480
        assert ticket.first_response_due_at == T0 + timedelta(minutes=60)
        assert ticket.resolution_due_at == T0 + timedelta(minutes=480)
        assert ticket.assigned_expert_profile_id == "E2"
        assert ticket.id in ticket_repository.tickets

    async def test_description_becomes_opening_message(self, engine, company, ticket_repository):
        ticket = await open_ticket(engine, company)

        [message] = ticket_repository.messages
        assert message.ticket_id == ticket.id
        assert message.author_role == ActorRole.COMPANY
        assert message.author_user_id == company.user_id
        assert not message.is_internal
        assert ticket.first_response_at is None

    async def test_asset_primary_expert_assigned(self, engine, company):
        ticket = await open_ticket(engine, company, asset_id="A1")
        assert ticket.assigned_expert_profile_id == "E1"

    async def test_asset_only_uses_system_defaults(self, engine, company):
        ticket = await open_ticket(engine, company, service_id=None, asset_id="A1")
        assert ticket.service_id is None
        assert (ticket.sla_first_response_minutes, ticket.sla_resolution_minutes) == (60, 480)

    async def test_contract_override_snapshotted(self, engine, company):
        ticket = await open_ticket(engine, company, service_id="network")
        assert (ticket.sla_first_response_minutes, ticket.sla_resolution_minutes) == (15, 240)
        assert ticket.first_response_due_at == T0 + timedelta(minutes=15)

    async def test_service_or_asset_required(self, engine, company):
        with pytest.raises(ValidationException) as exc_info:
            await open_ticket(engine, company, service_id=None, asset_id=None)
        assert "service_id" in exc_info.value.errors

    async def test_title_and_description_validated_together(self, engine, company):
        with pytest.raises(ValidationException) as exc_info:
            await engine.create_ticket(company, title="x" * 201, description="  ", service_id="endpoint")
        assert set(exc_info.value.errors) == {"title", "description"}

    async def test_foreign_asset_rejected(self, engine, company, ticket_repository):
        with pytest.raises(ValidationException) as exc_info:
            await open_ticket(engine, company, asset_id="A2")
        assert "asset_id" in exc_info.value.errors
        assert ticket_repository.tickets == {}

    @pytest.mark.parametrize("service_id", ["retired", "missing"])
    async def test_inactive_or_unknown_service_rejected(self, engine, company, service_id):
        with pytest.raises(ValidationException) as exc_info:
            await open_ticket(engine, company, service_id=service_id)
        assert "service_id" in exc_info.value.errors

    async def test_only_companies_create(self, engine, expert):
        with pytest.raises(ForbiddenException):
            await open_ticket(engine, expert)

    async def test_missing_company_profile(self, engine):
        ghost = Actor(role=ActorRole.COMPANY, user_id="nobody")
        with pytest.raises(ResourceNotFoundException) as exc_info:
            await open_ticket(engine, ghost)
        assert exc_info.value.message == "Company profile not found"

    async def test_snapshot_unaffected_by_later_catalog_changes(
        self, engine, company, primary_expert, catalog, config_provider, clock
    ):
        ticket = await open_ticket(engine, company, service_id="network")  # 15 / 240

        catalog.services["network"] = ServiceCatalogItem(
            id="network", name="Network Monitoring",
            default_first_response_minutes=5, default_resolution_minutes=30,
        )
        catalog.contract_services = [
            ContractService(
                id="KS1", contract_id="K1", service_id="network",
                custom_first_response_minutes=2, custom_resolution_minutes=20,
            ),
        ]
        config_provider.defaults = SLADefaults(first_response_minutes=1, resolution_minutes=2)

        clock.advance(10)
        await engine.add_message(primary_expert, ticket.id, "Looking into it.")
        clock.advance(190)
        await walk_to(engine, primary_expert, ticket.id, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED)

        stored = await engine.get_ticket(company, ticket.id)
        assert (stored.sla_first_response_minutes, stored.sla_resolution_minutes) == (15, 240)
        assert stored.first_response_due_at == T0 + timedelta(minutes=15)
        assert stored.resolution_due_at == T0 + timedelta(minutes=240)
        assert not stored.first_response_breached
        assert not stored.resolution_breached


class TestMessages:

    async def test_first_expert_message_records_response(self, engine, company, primary_expert, clock):
        ticket = await open_ticket(engine, company)

        clock.advance(10)
        await engine.add_message(primary_expert, ticket.id, "Looking into it.")

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.first_response_at == T0 + timedelta(minutes=10)
        assert not ticket.first_response_breached

    async def test_first_response_is_idempotent(self, engine, company, primary_expert, clock):
        ticket = await open_ticket(engine, company)

        clock.advance(10)
        await engine.add_message(primary_expert, ticket.id, "Looking into it.")
        clock.advance(120)
        await engine.add_message(primary_expert, ticket.id, "Still on it.")

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.first_response_at == T0 + timedelta(minutes=10)
        assert not ticket.first_response_breached

    async def test_company_message_is_not_a_response(self, engine, company, clock):
        ticket = await open_ticket(engine, company)

        clock.advance(5)
        await engine.add_message(company, ticket.id, "Any update?")

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.first_response_at is None

    async def test_late_response_breaches_and_stays_breached(self, engine, company, primary_expert, clock):
        ticket = await open_ticket(engine, company)

        clock.advance(61)
        await engine.add_message(primary_expert, ticket.id, "Sorry for the delay.")
        clock.advance(1)
        await engine.add_message(primary_expert, ticket.id, "Fixed.")

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.first_response_at == T0 + timedelta(minutes=61)
        assert ticket.first_response_breached

    async def test_admin_message_counts_as_response(self, engine, company, admin, clock):
        ticket = await open_ticket(engine, company)

        clock.advance(20)
        await engine.add_message(admin, ticket.id, "Escalated.")

        ticket = await engine.get_ticket(admin, ticket.id)
        assert ticket.first_response_at == T0 + timedelta(minutes=20)

    async def test_internal_notes_hidden_from_company(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)
        await engine.add_message(primary_expert, ticket.id, "Probably the driver.", is_internal=True)
        await engine.add_message(primary_expert, ticket.id, "We are checking the driver.")

        company_view = await engine.list_messages(company, ticket.id)
        expert_view = await engine.list_messages(primary_expert, ticket.id)

        assert len(company_view) == 2
        assert all(not m.is_internal for m in company_view)
        assert len(expert_view) == 3

    async def test_internal_note_counts_as_response(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)
        await engine.add_message(primary_expert, ticket.id, "Note.", is_internal=True)

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.first_response_at is not None

    async def test_company_cannot_post_internal(self, engine, company):
        ticket = await open_ticket(engine, company)
        message = await engine.add_message(company, ticket.id, "Secret?", is_internal=True)
        assert not message.is_internal

    async def test_empty_body_rejected(self, engine, company):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ValidationException) as exc_info:
            await engine.add_message(company, ticket.id, "   ")
        assert "body" in exc_info.value.errors

    async def test_closed_ticket_rejects_messages(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)
        await walk_to(engine, primary_expert, ticket.id, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED)
        await engine.change_status(company, ticket.id, TicketStatus.CLOSED)

        with pytest.raises(ValidationException):
            await engine.add_message(primary_expert, ticket.id, "One more thing.")


class TestStatusChanges:

    async def test_full_lifecycle(self, engine, company, primary_expert, clock):
        ticket = await open_ticket(engine, company)

        await walk_to(
            engine, primary_expert, ticket.id,
            TicketStatus.IN_PROGRESS,
            TicketStatus.WAITING_FOR_CUSTOMER,
            TicketStatus.IN_PROGRESS,
        )
        clock.advance(30)
        ticket = await engine.change_status(primary_expert, ticket.id, TicketStatus.RESOLVED)
        assert ticket.resolved_at == T0 + timedelta(minutes=30)
        assert not ticket.resolution_breached

        clock.advance(5)
        ticket = await engine.change_status(company, ticket.id, TicketStatus.CLOSED)
        assert ticket.status == TicketStatus.CLOSED
        assert ticket.closed_at == T0 + timedelta(minutes=35)

    async def test_resolving_late_breaches(self, engine, company, primary_expert, clock):
        ticket = await open_ticket(engine, company)
        await engine.change_status(primary_expert, ticket.id, TicketStatus.IN_PROGRESS)

        clock.advance(500)
        ticket = await engine.change_status(primary_expert, ticket.id, TicketStatus.RESOLVED)
        assert ticket.resolution_breached

        ticket = await engine.change_status(company, ticket.id, TicketStatus.CLOSED)
        assert ticket.resolution_breached

    async def test_skipping_states_rejected(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)

        with pytest.raises(ValidationException) as exc_info:
            await engine.change_status(primary_expert, ticket.id, TicketStatus.WAITING_FOR_CUSTOMER)
        assert "status" in exc_info.value.errors

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.status == TicketStatus.OPEN

    async def test_company_cannot_move_open_ticket(self, engine, company):
        ticket = await open_ticket(engine, company)

        with pytest.raises(ValidationException) as exc_info:
            await engine.change_status(company, ticket.id, TicketStatus.IN_PROGRESS)
        assert exc_info.value.errors["status"] == ["Company can only close resolved tickets."]

    async def test_closed_is_terminal(self, engine, company, admin):
        ticket = await open_ticket(engine, company)
        await walk_to(
            engine, admin, ticket.id,
            TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED,
        )

        with pytest.raises(ValidationException):
            await engine.change_status(admin, ticket.id, TicketStatus.IN_PROGRESS)


class TestSatisfaction:

    async def close_ticket(self, engine, company, admin):
        ticket = await open_ticket(engine, company)
        await walk_to(
            engine, admin, ticket.id,
            TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED,
        )
        return ticket

    async def test_rejected_before_close(self, engine, company, admin):
        ticket = await open_ticket(engine, company)
        await walk_to(engine, admin, ticket.id, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED)

        with pytest.raises(ValidationException) as exc_info:
            await engine.submit_satisfaction(company, ticket.id, rating=5)
        assert "status" in exc_info.value.errors

    async def test_submitted_once(self, engine, company, admin, ticket_repository):
        ticket = await self.close_ticket(engine, company, admin)

        satisfaction = await engine.submit_satisfaction(
            company, ticket.id, rating=4, communication_rating=5, comment=" Quick fix. "
        )
        assert satisfaction.company_profile_id == "C1"
        assert satisfaction.comment == "Quick fix."

        with pytest.raises(ValidationException):
            await engine.submit_satisfaction(company, ticket.id, rating=5)
        assert len(ticket_repository.satisfactions) == 1

    async def test_concurrent_duplicate_rejected(self, engine, company, admin, ticket_repository, monkeypatch):
        ticket = await self.close_ticket(engine, company, admin)
        await engine.submit_satisfaction(company, ticket.id, rating=4)

        async def not_yet_visible(ticket_id):
            return False

        # Second submission passed the existence check before the first landed
        monkeypatch.setattr(ticket_repository, "satisfaction_exists", not_yet_visible)

        with pytest.raises(ValidationException) as exc_info:
            await engine.submit_satisfaction(company, ticket.id, rating=5)
        assert exc_info.value.errors["ticket_id"] == ["Satisfaction has already been submitted."]
        assert len(ticket_repository.satisfactions) == 1

    async def test_rating_bounds(self, engine, company, admin):
        ticket = await self.close_ticket(engine, company, admin)

        with pytest.raises(ValidationException) as exc_info:
            await engine.submit_satisfaction(company, ticket.id, rating=4, response_time_rating=6)
        assert "response_time_rating" in exc_info.value.errors

    async def test_only_companies_submit(self, engine, company, admin):
        ticket = await self.close_ticket(engine, company, admin)
        with pytest.raises(ForbiddenException):
            await engine.submit_satisfaction(admin, ticket.id, rating=5)


class TestTimeLogs:

    async def test_log_and_list_newest_first(self, engine, company, primary_expert, admin, clock):
        ticket = await open_ticket(engine, company)

        await engine.log_time(primary_expert, ticket.id, 30, WorkType.REMOTE)
        clock.advance(60)
        await engine.log_time(primary_expert, ticket.id, 90, WorkType.ONSITE)

        logs = await engine.list_time_logs(admin, ticket.id)
        assert [log.minutes for log in logs] == [90, 30]
        assert logs[0].expert_profile_id == "E2"

    async def test_time_log_has_no_sla_effect(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)
        await engine.log_time(primary_expert, ticket.id, 30, WorkType.REMOTE)

        ticket = await engine.get_ticket(company, ticket.id)
        assert ticket.first_response_at is None

    async def test_minutes_must_be_positive(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ValidationException) as exc_info:
            await engine.log_time(primary_expert, ticket.id, 0, WorkType.REMOTE)
        assert "minutes" in exc_info.value.errors

    async def test_companies_cannot_see_time_logs(self, engine, company):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ForbiddenException):
            await engine.list_time_logs(company, ticket.id)


class TestAssignExpert:

    async def test_admin_reassigns_to_linked_expert(self, engine, company, admin, expert):
        ticket = await open_ticket(engine, company)

        ticket = await engine.assign_expert(admin, ticket.id, EXPERT_USER)
        assert ticket.assigned_expert_profile_id == "E1"

        # The newly assigned expert can now see it
        assert (await engine.get_ticket(expert, ticket.id)).id == ticket.id

    @pytest.mark.parametrize("expert_user_id", [UNAPPROVED_EXPERT_USER, "nobody"])
    async def test_expert_must_be_approved(self, engine, company, admin, expert_user_id):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ValidationException) as exc_info:
            await engine.assign_expert(admin, ticket.id, expert_user_id)
        assert exc_info.value.errors["expert_id"] == ["Expert is not approved or not found."]

    async def test_expert_must_be_linked(self, engine, company, admin):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ValidationException) as exc_info:
            await engine.assign_expert(admin, ticket.id, UNLINKED_EXPERT_USER)
        assert exc_info.value.errors["expert_id"] == ["Expert is not linked to this company."]

    async def test_only_admins_assign(self, engine, company, primary_expert):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ForbiddenException):
            await engine.assign_expert(primary_expert, ticket.id, EXPERT_USER)


class TestVisibility:

    async def test_other_company_sees_nothing(self, engine, company, other_company):
        ticket = await open_ticket(engine, company)
        with pytest.raises(ResourceNotFoundException):
            await engine.get_ticket(other_company, ticket.id)

    async def test_unassigned_expert_sees_nothing(self, engine, company, expert):
        ticket = await open_ticket(engine, company)  # assigned to E2
        with pytest.raises(ResourceNotFoundException):
            await engine.get_ticket(expert, ticket.id)

    async def test_unapproved_expert_forbidden(self, engine, company):
        ticket = await open_ticket(engine, company)
        pending = Actor(role=ActorRole.EXPERT, user_id=UNAPPROVED_EXPERT_USER)
        with pytest.raises(ForbiddenException):
            await engine.get_ticket(pending, ticket.id)

    async def test_admin_sees_everything(self, engine, company, admin):
        ticket = await open_ticket(engine, company)
        assert (await engine.get_ticket(admin, ticket.id)).id == ticket.id

    async def test_unknown_ticket(self, engine, admin):
        with pytest.raises(ResourceNotFoundException):
            await engine.get_ticket(admin, "does-not-exist")

    async def test_soft_deleted_ticket_not_found(self, engine, company, admin, ticket_repository):
        ticket = await open_ticket(engine, company)
        ticket_repository.deleted_ticket_ids.add(ticket.id)
        with pytest.raises(ResourceNotFoundException):
            await engine.get_ticket(admin, ticket.id)


class TestConcurrentUpdates:

    async def test_stale_copy_cannot_undo_resolution(self, engine, company, admin, ticket_repository, clock):
        ticket = await open_ticket(engine, company)  # 60 / 480
        await engine.change_status(admin, ticket.id, TicketStatus.IN_PROGRESS)
        stale = await ticket_repository.get_by_id(ticket.id)

        clock.advance(500)
        await engine.change_status(admin, ticket.id, TicketStatus.RESOLVED)

        stale.mark_first_response(clock())
        with pytest.raises(ConflictException):
            await ticket_repository.update(stale)

        stored = await engine.get_ticket(admin, ticket.id)
        assert stored.status == TicketStatus.RESOLVED
        assert stored.resolution_breached
        assert stored.first_response_at is None

    async def test_version_advances_on_each_write(self, engine, company, admin):
        ticket = await open_ticket(engine, company)
        assert ticket.version == 1

        ticket = await engine.change_status(admin, ticket.id, TicketStatus.IN_PROGRESS)
        assert ticket.version == 2
        assert (await engine.get_ticket(admin, ticket.id)).version == 2


class TestListing:

    async def test_company_lists_own_tickets_newest_first(self, engine, company, other_company, clock):
        first = await open_ticket(engine, company, title="First")
        clock.advance(5)
        second = await open_ticket(engine, company, title="Second")
        await open_ticket(engine, other_company, service_id="endpoint")

        tickets = await engine.list_tickets(company)
        assert [t.id for t in tickets] == [second.id, first.id]

    async def test_expert_lists_assigned_tickets(self, engine, company, expert, primary_expert):
        assigned_to_e1 = await open_ticket(engine, company, asset_id="A1")
        assigned_to_e2 = await open_ticket(engine, company)

        assert [t.id for t in await engine.list_tickets(expert)] == [assigned_to_e1.id]
        assert [t.id for t in await engine.list_tickets(primary_expert)] == [assigned_to_e2.id]

    async def test_unapproved_expert_cannot_list(self, engine):
        pending = Actor(role=ActorRole.EXPERT, user_id=UNAPPROVED_EXPERT_USER)
        with pytest.raises(ForbiddenException):
            await engine.list_tickets(pending)

    async def test_admin_lists_everything_with_status_filter(
        self, engine, company, other_company, admin, ticket_repository
    ):
        mine = await open_ticket(engine, company)
        theirs = await open_ticket(engine, other_company)
        deleted = await open_ticket(engine, company)
        ticket_repository.deleted_ticket_ids.add(deleted.id)
        await engine.change_status(admin, theirs.id, TicketStatus.IN_PROGRESS)

        assert {t.id for t in await engine.list_tickets(admin)} == {mine.id, theirs.id}
        in_progress = await engine.list_tickets(admin, status=TicketStatus.IN_PROGRESS)
        assert [t.id for t in in_progress] == [theirs.id]

    async def test_closed_tickets_with_satisfaction(self, engine, company, admin, clock):
        rated = await open_ticket(engine, company, title="Rated")
        unrated = await open_ticket(engine, company, title="Unrated")
        await open_ticket(engine, company, title="Still open")

        for ticket in (rated, unrated):
            clock.advance(10)
            await walk_to(
                engine, admin, ticket.id,
                TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED,
            )
        await engine.submit_satisfaction(company, rated.id, rating=5)

        rows = await engine.list_closed_ticket_satisfaction(company)
        assert [(t.title, s.rating if s else None) for t, s in rows] == [("Unrated", None), ("Rated", 5)]

    async def test_only_companies_review_satisfaction(self, engine, admin):
        with pytest.raises(ForbiddenException):
            await engine.list_closed_ticket_satisfaction(admin)
