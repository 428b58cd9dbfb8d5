"""
MSP Desk
========

Ticket lifecycle and SLA engine for a managed-service-provider operations
platform.
"""

__version__ = "1.0.0"
