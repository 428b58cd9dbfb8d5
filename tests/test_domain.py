"""Tests for ticket domain rules: workflow table, SLA arithmetic, entity invariants."""

from datetime import timedelta

import pytest

from msp_desk.config import TicketStatus
from msp_desk.core import ValidationException
from msp_desk.tickets.domain import (
    ContractService,
    ServiceCatalogItem,
    SLACalculator,
    SLADefaults,
    SLAMinutes,
    Ticket,
    TicketTimeLog,
    TicketWorkflow,
    validate_rating,
)

from conftest import T0

S = TicketStatus


class TestTicketWorkflow:

    @pytest.mark.parametrize("current,requested", [
        (S.OPEN, S.IN_PROGRESS),
        (S.IN_PROGRESS, S.WAITING_FOR_CUSTOMER),
        (S.IN_PROGRESS, S.RESOLVED),
        (S.WAITING_FOR_CUSTOMER, S.IN_PROGRESS),
        (S.RESOLVED, S.CLOSED),
    ])
    def test_allowed_transitions(self, current, requested):
        assert TicketWorkflow.is_valid_transition(current, requested)

    @pytest.mark.parametrize("current,requested", [
        (S.OPEN, S.WAITING_FOR_CUSTOMER),
        (S.OPEN, S.RESOLVED),
        (S.OPEN, S.CLOSED),
        (S.OPEN, S.OPEN),
        (S.WAITING_FOR_CUSTOMER, S.RESOLVED),
        (S.RESOLVED, S.IN_PROGRESS),
        (S.CLOSED, S.OPEN),
        (S.CLOSED, S.IN_PROGRESS),
    ])
    def test_rejected_transitions(self, current, requested):
        assert not TicketWorkflow.is_valid_transition(current, requested)

    def test_closed_is_terminal(self):
        assert all(not TicketWorkflow.is_valid_transition(S.CLOSED, status) for status in S)

    def test_company_may_only_close_resolved(self):
        assert TicketWorkflow.is_company_transition(S.RESOLVED, S.CLOSED)
        assert not TicketWorkflow.is_company_transition(S.OPEN, S.IN_PROGRESS)
        assert not TicketWorkflow.is_company_transition(S.IN_PROGRESS, S.RESOLVED)


class TestSLAArithmetic:

    def test_deadline_is_created_plus_minutes(self):
        assert SLACalculator.calculate_deadline(T0, 60) == T0 + timedelta(minutes=60)

    def test_breach_is_strictly_after_deadline(self):
        deadline = T0 + timedelta(minutes=60)
        assert not SLACalculator.is_breached(deadline, deadline)
        assert SLACalculator.is_breached(deadline + timedelta(seconds=1), deadline)

    def test_overrides_apply_per_field(self):
        base = SLAMinutes(first_response=60, resolution=480)
        assert base.with_overrides(first_response=30) == SLAMinutes(30, 480)
        assert base.with_overrides(resolution=240) == SLAMinutes(60, 240)
        assert base.with_overrides() == base

    def test_minutes_must_be_positive(self):
        with pytest.raises(ValueError):
            SLAMinutes(first_response=0, resolution=480)

    def test_defaults_reject_resolution_shorter_than_first_response(self):
        with pytest.raises(ValueError):
            SLADefaults(first_response_minutes=120, resolution_minutes=60)

    def test_defaults(self):
        assert SLADefaults().to_minutes() == SLAMinutes(60, 480)


class TestTicketEntity:

    def make_ticket(self) -> Ticket:
        return Ticket.open(
            company_profile_id="C1",
            title="Printer offline",
            description="The office printer is offline.",
            sla=SLAMinutes(first_response=60, resolution=480),
            created_at=T0,
        )

    def test_open_snapshots_due_dates(self):
        ticket = self.make_ticket()

        assert ticket.status == S.OPEN
        assert ticket.first_response_due_at == T0 + timedelta(minutes=60)
        assert ticket.resolution_due_at == T0 + timedelta(minutes=480)
        assert not ticket.first_response_breached
        assert not ticket.resolution_breached

    def test_first_response_is_recorded_once(self):
        ticket = self.make_ticket()

        assert ticket.mark_first_response(T0 + timedelta(minutes=10))
        assert not ticket.mark_first_response(T0 + timedelta(minutes=90))
        assert ticket.first_response_at == T0 + timedelta(minutes=10)
        assert not ticket.first_response_breached

    def test_late_first_response_breaches(self):
        ticket = self.make_ticket()
        ticket.mark_first_response(T0 + timedelta(minutes=61))
        assert ticket.first_response_breached

    def test_resolving_late_breaches_resolution(self):
        ticket = self.make_ticket()
        ticket.apply_status(S.IN_PROGRESS, T0)
        ticket.apply_status(S.RESOLVED, T0 + timedelta(minutes=500))

        assert ticket.resolved_at == T0 + timedelta(minutes=500)
        assert ticket.resolution_breached

    def test_resolution_breach_never_clears(self):
        ticket = self.make_ticket()
        ticket.apply_status(S.IN_PROGRESS, T0)
        ticket.apply_status(S.RESOLVED, T0 + timedelta(minutes=500))
        ticket.apply_status(S.CLOSED, T0 + timedelta(minutes=510))

        assert ticket.resolution_breached
        assert ticket.closed_at == T0 + timedelta(minutes=510)


class TestEntityInvariants:

    def test_time_log_minutes_positive(self):
        with pytest.raises(ValueError):
            TicketTimeLog(id="t", ticket_id="x", expert_profile_id="E1", minutes=0, work_type="remote")

    def test_service_resolution_not_shorter(self):
        with pytest.raises(ValueError):
            ServiceCatalogItem(id="s", name="s", default_first_response_minutes=60, default_resolution_minutes=30)

    def test_contract_override_partial_allowed(self):
        override = ContractService(id="cs", contract_id="k", service_id="s", custom_resolution_minutes=90)
        assert override.custom_first_response_minutes is None

    def test_contract_override_ordering(self):
        with pytest.raises(ValueError):
            ContractService(
                id="cs", contract_id="k", service_id="s",
                custom_first_response_minutes=90, custom_resolution_minutes=30,
            )

    @pytest.mark.parametrize("value", [0, 6])
    def test_rating_bounds(self, value):
        with pytest.raises(ValidationException) as exc_info:
            validate_rating("rating", value)
        assert "rating" in exc_info.value.errors

    def test_optional_rating_may_be_missing(self):
        validate_rating("communication_rating", None)

    def test_required_rating_missing(self):
        with pytest.raises(ValidationException):
            validate_rating("rating", None, required=True)
