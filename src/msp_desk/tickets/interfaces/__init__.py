"""
Tickets Interfaces Layer
========================

API controllers for the tickets module.
"""

from msp_desk.tickets.interfaces.controllers import (
    admin_router,
    company_router,
    expert_router,
    get_ticket_engine,
)

__all__ = ["company_router", "expert_router", "admin_router", "get_ticket_engine"]
