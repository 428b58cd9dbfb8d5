"""
Tickets Module
==============

Bounded Context for the support ticket lifecycle.

Responsibilities:
- Snapshot SLA targets at ticket creation (system default, service default,
  active-contract override)
- Auto-assign a default expert (asset primary expert, then company primary)
- Enforce the ticket status workflow and its timestamps
- Detect first-response and resolution SLA breaches when the qualifying
  event happens
- Gate satisfaction surveys on closed tickets
- Record expert time logs
"""

__version__ = "1.0.0"
